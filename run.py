#!/usr/bin/env python3
"""Development runner"""
from localbak.cli import cli

if __name__ == '__main__':
    # Same as the installed `localbak` command, without installing
    cli(prog_name='localbak')
