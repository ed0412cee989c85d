#!/usr/bin/env python

from setuptools import setup

import idmx

setup(name='idmx',
      version=idmx.VERSION,
      description='An anonymous credential system built on CL signatures and zero-knowledge proofs',
      author='George Danezis',
      author_email='g.danezis@ucl.ac.uk',
      packages=['idmx'],
      license="2-clause BSD",
      long_description="""Issuance and selective disclosure of anonymous credentials: CL signatures, prime encoded attributes, range proofs, pseudonyms and verifiable encryption, on top of the petlib big number bindings.""",

      setup_requires=["pytest >= 2.6.4"],
      tests_require = [
            "pytest >= 2.5.0",
            "paver >= 1.2.3",
            "pytest-cov >= 1.8.1",
            ],
      install_requires=[
            "petlib >= 0.0.40",
            "msgpack >= 0.6.0",
            "pytest >= 2.5.0",
      ],
      extras_require={
            "test": [
                  "pytest >= 2.5.0",
                  "paver >= 1.2.3",
                  "pytest-cov >= 1.8.1",
            ],
      },
      zip_safe=False,
)
