#!/usr/bin/env python3

"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2019 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

from setuptools import setup, find_packages


def main():
    setup(name='funcslower',
          version='0.1.0',
          description='Trace kernel functions slower than a threshold, using Ftrace.',
          author='Yordan Karadzhov (VMware)',
          author_email='y.karadz@gmail.com',
          license='LGPL-2.1',
          packages=find_packages(exclude=['tests', 'tests.*']),
          python_requires='>=3.8',
          install_requires=['click>=8.0'],
          entry_points={
              'console_scripts': ['funcslower = funcslower.cli:main'],
              },
          classifiers=[
              'Development Status :: 4 - Beta',
              'Programming Language :: Python :: 3',
              'Operating System :: POSIX :: Linux',
              ]
          )


if __name__ == '__main__':
    main()
