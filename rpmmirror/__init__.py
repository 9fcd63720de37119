#!/usr/bin/env python3

"""
RPM Repository Mirror

Mirrors a remote YUM/DNF repository (repodata/repomd.xml, its secondary
metadata files and every package listed in primary) onto local storage,
fetching only what is missing or stale.
"""

__version__ = "1.0.0"
__author__ = "RPM Mirror Project"
