"""Setup script for the Link Graph Engine."""

from setuptools import setup, find_packages

setup(
    name="link-graph-engine",
    version="1.0.0",
    description="Sitemap inventory, link health monitoring and internal link placement",
    author="Common Notary Apostille",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "sqlalchemy>=2.0.0",
        "httpx>=0.25.0",
        "beautifulsoup4>=4.12.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dateutil>=2.8.0",
        "loguru>=0.7.0",
        "tenacity>=8.2.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ]
    },
    python_requires=">=3.10",
)
