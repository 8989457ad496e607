from setuptools import setup, find_packages

setup(
    name="change_summary",
    version="0.1",
    packages=find_packages(where="src"),  # Tell it to look inside the "src" folder
    package_dir={"": "src"},              # Root is "src/"
    install_requires=[
        "geopandas",
        "pandas",
        "numpy",
        "xarray",
        "rioxarray",
        "rasterio",
        "netCDF4",
        "joblib>=1.4",
        "pyyaml",
        "tqdm"
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.8",
    description="Most recent / most probable change summaries from trend-season decomposition output",
)
