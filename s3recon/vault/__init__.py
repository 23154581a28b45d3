# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Vault - Persistent snapshots and operation log.
"""

from s3recon.vault.sqlite_vault import (
    init_vault_db,
    save_snapshot,
    load_snapshot,
    delete_snapshot,
    record_operation,
    complete_operation,
    get_operation,
    list_operations,
    OperationRecord,
    Snapshot,
)

__all__ = [
    # Snapshots
    "init_vault_db",
    "save_snapshot",
    "load_snapshot",
    "delete_snapshot",
    # Operation log
    "record_operation",
    "complete_operation",
    "get_operation",
    "list_operations",
    # Types
    "OperationRecord",
    "Snapshot",
]
