"""Install expo-auth package."""

from setuptools import setup, find_packages

setup(
    name='expo-auth',
    version='0.1.0',
    packages=find_packages(exclude=['*test*']),
    install_requires=[
        "flask",
        "werkzeug",
        "sqlalchemy>=1.4",
        "redis>=4.1",
        "pytz",
        "retry",
        "click",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["expo-auth=expo_auth.cli:cli"],
    },
    zip_safe=False
)
