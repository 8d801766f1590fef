"""Setup configuration for crm_analytics"""

from setuptools import setup, find_packages

setup(
    name="hubspot-crm-analytics",
    version="0.1.0",
    description=(
        "HubSpot CRM client and sales analytics: per-period deal statistics, "
        "owner performance, pipeline stage conversion and revenue forecast."
    ),
    author="HubSpot CRM Analytics Contributors",
    author_email="",
    python_requires=">=3.10",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0",
            "black>=22.0",
            "flake8>=4.0",
            "mypy>=0.950",
        ],
    },
    entry_points={
        "console_scripts": [
            "hubspot-crm-analytics=crm_analytics.main:main",
        ],
    },
)
