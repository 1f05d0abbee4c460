"""Choose between a clean install and an update.

The install record is the switch: when it exists the deployment is updated
in place, otherwise it is installed from scratch. The source is either a
local tree or a fresh clone of a git repository.
"""

from __future__ import annotations

import logging
import shutil

from specfirst.config import Settings
from specfirst.deploy.fetch import cloned_checkout, source_root_in
from specfirst.deploy.install import Copier, InstallResult, InstallTransaction
from specfirst.deploy.layout import DeploymentLayout, SourceTree
from specfirst.deploy.store import DeploymentStore
from specfirst.deploy.update import UpdateResult, UpdateTransaction

logger = logging.getLogger(__name__)


def build_layout(settings: Settings) -> DeploymentLayout:
    return DeploymentLayout(
        target_root=settings.target_root,
        namespace=settings.namespace,
        shared_file=settings.shared_file,
    )


def build_store(settings: Settings) -> DeploymentStore:
    return DeploymentStore(build_layout(settings))


def build_source(settings: Settings) -> SourceTree:
    return SourceTree(settings.source_root, shared_file=settings.shared_file)


def deploy(
    settings: Settings,
    copier: Copier = shutil.copy2,
    force_update: bool = False,
) -> InstallResult | UpdateResult:
    """Install or update, whichever the target's state calls for.

    With ``settings.repo_url`` set the source is cloned first and
    ``source_root`` is resolved inside the clone. ``force_update`` only
    changes the log message when nothing is installed: an update with no
    prior install degrades to a clean install.
    """
    if settings.repo_url:
        with cloned_checkout(settings.repo_url) as checkout:
            root = source_root_in(checkout, settings.source_root)
            source = SourceTree(root, shared_file=settings.shared_file)
            return _deploy(settings, source, copier, force_update)
    return _deploy(settings, build_source(settings), copier, force_update)


def _deploy(
    settings: Settings,
    source: SourceTree,
    copier: Copier,
    force_update: bool,
) -> InstallResult | UpdateResult:
    store = build_store(settings)

    if store.is_installed():
        return UpdateTransaction(
            source,
            store,
            shared_mode=settings.shared_mode,
            retention=settings.backup_retention,
            copier=copier,
        ).run()

    if force_update:
        logger.warning("Nothing installed at %s, running a clean install", store.layout.target_root)
    return InstallTransaction(source, store, shared_mode=settings.shared_mode, copier=copier).run()
