from setuptools import find_packages, setup

# Core requirements
INSTALL_REQUIRES = [
    "requests>=2.31.0",
    "python-dotenv>=1.0.0",
    "feedparser>=6.0.0",
    "pydantic>=2.0.0",
    "structlog>=23.2.0",
    "prometheus-client>=0.17.1",
    "click>=8.0.0",
]

# Development requirements
EXTRAS_REQUIRE = {
    "dev": [
        "pytest>=7.4.3",
        "pytest-cov>=4.1.0",
        "pytest-mock>=3.12.0",
        "black>=23.11.0",
        "flake8>=6.1.0",
        "mypy>=1.7.1",
        "isort>=5.12.0",
        "pre-commit>=3.5.0",
        "types-requests>=2.31.0.10",
    ],
    "test": [
        "pytest>=7.4.3",
        "pytest-cov>=4.1.0",
        "pytest-mock>=3.12.0",
    ],
}

setup(
    name="episode_aggregator",
    version="1.0.0",
    description="Periodic aggregator for episodic feeds with media catalog tagging",
    long_description=open("README.md", "r", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests*", "docs*"]),
    package_data={"episode_aggregator": ["storage/schema.sql"]},
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "episode-aggregator=episode_aggregator.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content :: News/Diary",
    ],
    python_requires=">=3.11",
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
)
