"""SFTPGo API client.

Python client for the SFTPGo management REST API, used by provisioning
tooling to declare and reconcile users, admins, groups, folders, roles,
event rules and actions, IP lists and licenses on a remote server.
"""

__version__ = "0.1.0"
