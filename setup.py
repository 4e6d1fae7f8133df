import os
from setuptools import setup

short_desc = "Fetch, checksum, cache and build the source packages of a software stack"

try:
    fname = 'README.rst'
    long_desc = open(os.path.join(os.path.dirname(__file__), fname)).read()
except IOError:
    long_desc = short_desc

setup(
    name = "stackcache",
    version = "0.1",
    author = "stackcache developers",
    description = (short_desc),
    license = "BSD",
    keywords = "package management source cache build",
    scripts=['bin/stk'],
    packages=[
          'stackcache',
          'stackcache.cli',
          'stackcache.cli.test',
          'stackcache.core',
          'stackcache.core.test',
          'stackcache.formats',
          'stackcache.formats.tests',
          'stackcache.spec',
          'stackcache.spec.tests',
          'stackcache.util',
          ],
    package_data={
        "stackcache.formats": ["config.example.yaml"],
        "stackcache.util": ["logging_config.yaml"],
        },
    install_requires=[
        "PyYAML",
        "jsonschema",
        ],
    extras_require={
        "s3": ["boto3"],
        "test": ["pytest", "mock"],
        },
    long_description=long_desc,
    classifiers=[
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Topic :: Utilities",
    "License :: OSI Approved :: BSD License",
    "Programming Language :: Python :: 3",
    ],
)
