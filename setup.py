from setuptools import setup, find_packages

setup(
    name="egarch-volatility-report",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["models", "errors", "calculate_report"],
    install_requires=[
        "numpy",
        "pandas",
        "scipy",
        "arch>=5.0",
        "statsmodels>=0.13",
        "yfinance",
        "tqdm",
        "psutil",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
)
