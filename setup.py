from setuptools import setup, find_packages

setup(
    name="netsink",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        'aiohttp>=3.9.0',
        'aiofiles>=22.1.0',
        'multidict>=6.0.0',
        'python-dotenv>=0.19.0',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'pytest-aiohttp>=1.0.4',
            'pytest-asyncio>=0.21.0',
            'cryptography>=3.4.7',
        ],
    },
    entry_points={
        'console_scripts': [
            'netsink=netsink.server:main',
        ],
    },
)
