"""Deployment of the package into a target directory.

``driver.deploy`` picks ``InstallTransaction`` or ``UpdateTransaction``;
``UninstallTransaction`` removes what they put there.
"""
