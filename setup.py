from setuptools import setup, find_packages

setup(
    name="bucketlimit",
    version="0.1.0",
    packages=find_packages(include=["bucketlimit", "bucketlimit.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "redis>=5.0",
        "sqlalchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        "starlette>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.23",
            "fakeredis[lua]>=2.20",
            "fastapi>=0.100",
            "httpx>=0.24",
        ],
    },
)
