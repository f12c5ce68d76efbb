"""Tableau Migration Tool

Migrates users, groups, projects, data sources and workbooks with their
permissions from one Tableau Server or Tableau Cloud site to another through
the REST API.
"""

__version__ = '0.1.0'

from .cli import main

__all__ = ['main']
