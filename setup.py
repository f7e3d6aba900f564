from setuptools import setup, find_packages

setup(
    name="cadence-engine",
    version="0.1.0",
    description="Recurring pattern detection and forecasting over transaction feeds",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2.0.0",
        "typing_extensions>=4.5.0",
        "numpy>=1.24.0",
    ],
    extras_require={
        # Persistence adapter only; boto3 is provided by the Lambda runtime
        "local": [
            "boto3>=1.26.0",
            "botocore>=1.29.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "boto3>=1.26.0",
            "botocore>=1.29.0",
        ],
        "dev": [
            "mypy>=1.0.0",
            "types-boto3>=1.0.0",
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "boto3>=1.26.0",
            "botocore>=1.29.0",
            "black>=23.0.0",
            "isort>=5.0.0",
            "flake8>=6.0.0"
        ]
    }
)
