"""orgglue — keep an organization's forge permissions in line with its identity provider.

The package compares a declared desired state of users, groups and roles
against what the backends report, then reports or corrects the drift.
"""

__version__ = "0.5.0"
