"""Setup script for sgrid package."""

from setuptools import setup, find_packages

setup(
    name='sgrid',
    version='3.1',
    packages=find_packages(exclude=['tests', 'tests.*']),
    package_data={'sgrid.config': ['defaults.yaml']},
    python_requires='>=3.9',
    install_requires=[
        'numpy>=1.20.0',
        'scipy>=1.9.0',
        'PyYAML>=5.4',
    ],
    extras_require={
        'gpu': ['cupy>=12.0'],
        'test': ['pytest>=7.0'],
    },
)
