"""
Shared constants for dbms-env.

Directory names and file names here are part of the on-disk layout.
Changing them orphans existing installs and caches.
"""

from __future__ import annotations

import sys

# Directory layout
DBMS_DIR_NAME = "dbmss"
DBMS_DIR_PREFIX = "dbms-"
DBMS_STAGING_PREFIX = ".staging-"
DBMS_MANIFEST_FILE = "dbms.manifest.json"
EXTENSION_DIR_NAME = "extensions"
SECRET_KEY_FILE = ".access-token.key"

# Distributions
DEFAULT_PRODUCT = "neo4j"
DEFAULT_EDITION = "enterprise"
SUPPORTED_DBMS_RANGE = ">=4.x"
DISTRIBUTION_KERNEL_SUFFIX = "-kernel-"
WILDCARD_VERSION = "*"

IS_WINDOWS = sys.platform == "win32"
DISTRIBUTION_PLATFORM = "windows" if IS_WINDOWS else "unix"
DISTRIBUTION_ARCHIVE_EXTENSION = ".zip" if IS_WINDOWS else ".tar.gz"

# Extensions
EXTENSION_MANIFEST = "manifest.json"
EXTENSION_MANIFEST_KEY = "relateExtension"
EXTENSION_NPM_PREFIX = "@dbms-ext/"
EXTENSION_ARCHIVE_EXTENSION = ".tgz"
PACKAGE_JSON = "package.json"

# Error messages that callers match on
VERSION_REQUIRED_MESSAGE = "Version must be specified"
INVALID_VERSION_MESSAGE = "Provided version argument is not valid semver, url or path."
