"""
Installed instances: materialization and process supervision.

Layout under the install root:

    <install_root>/
        .staging-<id>/          in-progress install (never visible as an instance)
        dbms-<id>/
            bin/<product>       control executable (start | stop | status)
            bin/<product>-admin admin executable
            lib/*.jar           distribution libraries (identity)
            dbms.manifest.json  {id, name, version, edition, createdAt}
"""

from .installer import DbmsInstaller
from .models import DbmsInfo, DbmsOperationResult, DbmsStatus
from .supervisor import CommandOutput, ProcessSupervisor, is_valid_dbms_id

__all__ = [
    "CommandOutput",
    "DbmsInfo",
    "DbmsInstaller",
    "DbmsOperationResult",
    "DbmsStatus",
    "ProcessSupervisor",
    "is_valid_dbms_id",
]
