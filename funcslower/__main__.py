"""
SPDX-License-Identifier: LGPL-2.1

Copyright 2022 VMware Inc, Yordan Karadzhov (VMware) <y.karadz@gmail.com>
"""

from .cli import main

main(prog_name='funcslower')
