from setuptools import setup, find_packages

setup(
    name="flightwatch",
    version="0.1.0",
    description="Tiered AviationStack flight-status refresher backend",
    package_dir={"": "backend"},
    packages=find_packages(where="backend"),
    install_requires=[
        "httpx>=0.23",
        "fastapi>=0.100",
        "uvicorn>=0.22",
        "python-dateutil>=2.8",
        "python-dotenv>=1.0",
        "slowapi>=0.1.8",
        "apscheduler>=3.10,<4",
        # python-opensky / geopy / beautifulsoup4 / pywebpush dropped – no tracking,
        # geocoding, scraping or push in this service
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
            "pytest-httpx>=0.23",
        ],
        "lint": [
            "black>=23.0",
            "flake8>=6.0",
        ],
    },
)
