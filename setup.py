from setuptools import setup, find_packages


setup(
    name="campack",
    version="0.1.0",
    description="Transactional, version-aware manager for components and packages",
    package_dir={"": "src"},
    packages=find_packages("src"),
    python_requires=">=3.10",
    install_requires=[
        "click>=8.0.0",
        "rich>=13.0.0",
        "tomlkit>=0.12.0",
        "semantic-version>=2.10.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "campack=campack.cli:cli",
        ],
    },
)
