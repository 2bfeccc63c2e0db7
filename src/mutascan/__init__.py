"""mutascan: crawl, template-scan and mutation-test web targets.

The command line entry point is :func:`mutascan.cli.main`.
"""

__version__ = "0.1.0"
