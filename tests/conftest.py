# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for s3recon tests.

Provides two S3 backends:
- a moto server, for round trips through the real request serializers
  and response parsers
- an in-memory fake speaking the aiobotocore client interface, for
  scripted failures, refill races and call accounting

The fake checks every request against the botocore S3 model and raises
real botocore ClientError objects with the codes the service uses, so
error classification is exercised exactly as in production.
"""

import copy
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generator, List, Tuple

import pytest
import pytest_asyncio
from botocore import xform_name
from botocore.exceptions import ClientError
from botocore.session import get_session as get_botocore_session
from botocore.validate import validate_parameters

# Set test environment variables
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

_S3_MODEL = get_botocore_session().get_service_model("s3")
_S3_OPERATIONS = {xform_name(name): name for name in _S3_MODEL.operation_names}


def client_error(code: str, message: str = "", operation: str = "Operation") -> ClientError:
    """Build a ClientError the way botocore does for a failed call."""
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}},
        operation,
    )


# ============================================================================
# In-memory S3
# ============================================================================

@dataclass
class FakeBucket:
    """Server-side state of one bucket."""

    name: str
    region: str
    acl: str = "private"
    object_lock_enabled: bool = False
    # One entry per remote configuration document, keyed by facet name
    config: Dict[str, Any] = field(default_factory=dict)
    # (key, version_id, is_delete_marker)
    versions: List[Tuple[str, str, bool]] = field(default_factory=list)
    # Keys delete_objects refuses to delete
    undeletable: set = field(default_factory=set)
    # Keep writing a new object after every delete_objects call
    refill: bool = False


class FakePaginator:
    def __init__(self, client: "FakeS3Client", operation: str):
        self.client = client
        self.operation = operation

    async def paginate(self, Bucket: str, **kwargs):
        self.client._record("list_object_versions", {"Bucket": Bucket, **kwargs})
        bucket = self.client._bucket(Bucket)
        page_size = self.client.page_size
        entries = list(bucket.versions)
        for start in range(0, max(len(entries), 1), page_size):
            page = entries[start:start + page_size]
            yield {
                "Versions": [
                    {"Key": k, "VersionId": v} for k, v, marker in page if not marker
                ],
                "DeleteMarkers": [
                    {"Key": k, "VersionId": v} for k, v, marker in page if marker
                ],
            }


class FakeS3Client:
    """
    Minimal aiobotocore-compatible S3 client.

    Every call is recorded in .calls as (operation, kwargs) after its
    parameters pass botocore's request validation. Failures can be
    scheduled with fail_next().
    """

    def __init__(self, page_size: int = 1000):
        self.buckets: Dict[str, FakeBucket] = {}
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.failures: Dict[str, List[ClientError]] = {}
        self.page_size = page_size
        self.region: str | None = None

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def fail_next(self, operation: str, code: str, message: str = "", times: int = 1) -> None:
        queue = self.failures.setdefault(operation, [])
        queue.extend(client_error(code, message, operation) for _ in range(times))

    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def calls_to(self, operation: str) -> List[Dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def add_bucket(self, name: str, region: str = "us-east-1", **kwargs) -> FakeBucket:
        bucket = FakeBucket(name=name, region=region, **kwargs)
        self.buckets[name] = bucket
        return bucket

    def add_versions(self, name: str, count: int, delete_markers: int = 0) -> None:
        bucket = self.buckets[name]
        for i in range(count):
            bucket.versions.append((f"obj-{i}", f"v{i}", False))
        for i in range(delete_markers):
            bucket.versions.append((f"obj-{i}", f"dm{i}", True))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, operation: str, kwargs: Dict[str, Any]) -> None:
        # Raises ParamValidationError like a real client would
        operation_model = _S3_MODEL.operation_model(_S3_OPERATIONS[operation])
        validate_parameters(kwargs, operation_model.input_shape)
        self.calls.append((operation, copy.deepcopy(kwargs)))
        queue = self.failures.get(operation)
        if queue:
            raise queue.pop(0)

    def _bucket(self, name: str, missing_code: str = "NoSuchBucket") -> FakeBucket:
        bucket = self.buckets.get(name)
        if bucket is None:
            raise client_error(missing_code, "The specified bucket does not exist")
        return bucket

    def _get(self, operation: str, Bucket: str, key: str, missing_code: str):
        self._record(operation, {"Bucket": Bucket})
        bucket = self._bucket(Bucket)
        if key not in bucket.config:
            raise client_error(missing_code, f"{key} is not configured", operation)
        return copy.deepcopy(bucket.config[key])

    def _put(self, operation: str, Bucket: str, key: str, value: Any) -> Dict[str, Any]:
        self._record(operation, {"Bucket": Bucket, key: value})
        self._bucket(Bucket).config[key] = copy.deepcopy(value)
        return {}

    def _delete(self, operation: str, Bucket: str, key: str) -> Dict[str, Any]:
        self._record(operation, {"Bucket": Bucket})
        self._bucket(Bucket).config.pop(key, None)
        return {}

    # ------------------------------------------------------------------
    # Bucket
    # ------------------------------------------------------------------

    async def create_bucket(self, **kwargs):
        self._record("create_bucket", kwargs)
        name = kwargs["Bucket"]
        if name in self.buckets:
            raise client_error("BucketAlreadyOwnedByYou", operation="CreateBucket")
        location = (kwargs.get("CreateBucketConfiguration") or {}).get("LocationConstraint")
        self.add_bucket(
            name,
            region=location or "us-east-1",
            acl=kwargs.get("ACL", "private"),
            object_lock_enabled=bool(kwargs.get("ObjectLockEnabledForBucket")),
        )
        return {"Location": f"/{name}"}

    async def head_bucket(self, Bucket: str):
        self._record("head_bucket", {"Bucket": Bucket})
        self._bucket(Bucket, missing_code="404")
        return {}

    async def delete_bucket(self, Bucket: str):
        self._record("delete_bucket", {"Bucket": Bucket})
        bucket = self._bucket(Bucket)
        if bucket.versions:
            raise client_error("BucketNotEmpty", "The bucket you tried to delete is not empty")
        del self.buckets[Bucket]
        return {}

    async def get_bucket_location(self, Bucket: str):
        self._record("get_bucket_location", {"Bucket": Bucket})
        region = self._bucket(Bucket).region
        return {"LocationConstraint": None if region == "us-east-1" else region}

    def get_paginator(self, operation: str) -> FakePaginator:
        return FakePaginator(self, operation)

    async def delete_objects(self, Bucket: str, Delete: Dict[str, Any]):
        self._record("delete_objects", {"Bucket": Bucket, "Delete": Delete})
        bucket = self._bucket(Bucket)
        wanted = {(o["Key"], o["VersionId"]) for o in Delete["Objects"]}
        errors = [
            {"Key": k, "VersionId": v, "Code": "AccessDenied", "Message": "Access Denied"}
            for k, v, _ in bucket.versions
            if (k, v) in wanted and k in bucket.undeletable
        ]
        bucket.versions = [
            (k, v, m)
            for k, v, m in bucket.versions
            if (k, v) not in wanted or k in bucket.undeletable
        ]
        if bucket.refill:
            bucket.versions.append((f"late-{len(self.calls)}", "v1", False))
        return {"Errors": errors} if errors else {}

    # ------------------------------------------------------------------
    # Facets
    # ------------------------------------------------------------------

    async def put_bucket_acl(self, Bucket: str, ACL: str):
        self._record("put_bucket_acl", {"Bucket": Bucket, "ACL": ACL})
        self._bucket(Bucket).acl = ACL
        return {}

    async def get_bucket_policy(self, Bucket: str):
        return {"Policy": self._get("get_bucket_policy", Bucket, "Policy", "NoSuchBucketPolicy")}

    async def put_bucket_policy(self, Bucket: str, Policy: str):
        return self._put("put_bucket_policy", Bucket, "Policy", Policy)

    async def delete_bucket_policy(self, Bucket: str):
        self._record("delete_bucket_policy", {"Bucket": Bucket})
        bucket = self._bucket(Bucket)
        if "Policy" not in bucket.config:
            raise client_error("NoSuchBucketPolicy")
        del bucket.config["Policy"]
        return {}

    async def get_bucket_cors(self, Bucket: str):
        return self._get("get_bucket_cors", Bucket, "CORSConfiguration", "NoSuchCORSConfiguration")

    async def put_bucket_cors(self, Bucket: str, CORSConfiguration: Dict[str, Any]):
        return self._put("put_bucket_cors", Bucket, "CORSConfiguration", CORSConfiguration)

    async def delete_bucket_cors(self, Bucket: str):
        return self._delete("delete_bucket_cors", Bucket, "CORSConfiguration")

    async def get_bucket_website(self, Bucket: str):
        return self._get(
            "get_bucket_website", Bucket, "WebsiteConfiguration", "NoSuchWebsiteConfiguration"
        )

    async def put_bucket_website(self, Bucket: str, WebsiteConfiguration: Dict[str, Any]):
        return self._put("put_bucket_website", Bucket, "WebsiteConfiguration", WebsiteConfiguration)

    async def delete_bucket_website(self, Bucket: str):
        return self._delete("delete_bucket_website", Bucket, "WebsiteConfiguration")

    async def get_bucket_versioning(self, Bucket: str):
        self._record("get_bucket_versioning", {"Bucket": Bucket})
        return copy.deepcopy(self._bucket(Bucket).config.get("VersioningConfiguration", {}))

    async def put_bucket_versioning(self, Bucket: str, VersioningConfiguration: Dict[str, Any]):
        return self._put(
            "put_bucket_versioning", Bucket, "VersioningConfiguration", VersioningConfiguration
        )

    async def get_bucket_logging(self, Bucket: str):
        self._record("get_bucket_logging", {"Bucket": Bucket})
        return copy.deepcopy(self._bucket(Bucket).config.get("BucketLoggingStatus", {}))

    async def put_bucket_logging(self, Bucket: str, BucketLoggingStatus: Dict[str, Any]):
        return self._put("put_bucket_logging", Bucket, "BucketLoggingStatus", BucketLoggingStatus)

    async def get_bucket_accelerate_configuration(self, Bucket: str):
        self._record("get_bucket_accelerate_configuration", {"Bucket": Bucket})
        return copy.deepcopy(self._bucket(Bucket).config.get("AccelerateConfiguration", {}))

    async def put_bucket_accelerate_configuration(
        self, Bucket: str, AccelerateConfiguration: Dict[str, Any]
    ):
        return self._put(
            "put_bucket_accelerate_configuration",
            Bucket,
            "AccelerateConfiguration",
            AccelerateConfiguration,
        )

    async def get_bucket_request_payment(self, Bucket: str):
        self._record("get_bucket_request_payment", {"Bucket": Bucket})
        stored = self._bucket(Bucket).config.get("RequestPaymentConfiguration")
        return copy.deepcopy(stored or {"Payer": "BucketOwner"})

    async def put_bucket_request_payment(
        self, Bucket: str, RequestPaymentConfiguration: Dict[str, Any]
    ):
        return self._put(
            "put_bucket_request_payment",
            Bucket,
            "RequestPaymentConfiguration",
            RequestPaymentConfiguration,
        )

    async def get_bucket_lifecycle_configuration(self, Bucket: str):
        return self._get(
            "get_bucket_lifecycle_configuration",
            Bucket,
            "LifecycleConfiguration",
            "NoSuchLifecycleConfiguration",
        )

    async def put_bucket_lifecycle_configuration(
        self, Bucket: str, LifecycleConfiguration: Dict[str, Any]
    ):
        return self._put(
            "put_bucket_lifecycle_configuration",
            Bucket,
            "LifecycleConfiguration",
            LifecycleConfiguration,
        )

    async def delete_bucket_lifecycle(self, Bucket: str):
        return self._delete("delete_bucket_lifecycle", Bucket, "LifecycleConfiguration")

    async def get_bucket_replication(self, Bucket: str):
        return {
            "ReplicationConfiguration": self._get(
                "get_bucket_replication",
                Bucket,
                "ReplicationConfiguration",
                "ReplicationConfigurationNotFoundError",
            )
        }

    async def put_bucket_replication(self, Bucket: str, ReplicationConfiguration: Dict[str, Any]):
        self._record(
            "put_bucket_replication",
            {"Bucket": Bucket, "ReplicationConfiguration": ReplicationConfiguration},
        )
        bucket = self._bucket(Bucket)
        versioning = bucket.config.get("VersioningConfiguration", {})
        if versioning.get("Status") != "Enabled":
            raise client_error(
                "InvalidRequest",
                "Versioning must be 'Enabled' on the bucket to apply a replication configuration",
            )
        bucket.config["ReplicationConfiguration"] = copy.deepcopy(ReplicationConfiguration)
        return {}

    async def delete_bucket_replication(self, Bucket: str):
        return self._delete("delete_bucket_replication", Bucket, "ReplicationConfiguration")

    async def get_bucket_encryption(self, Bucket: str):
        return {
            "ServerSideEncryptionConfiguration": self._get(
                "get_bucket_encryption",
                Bucket,
                "ServerSideEncryptionConfiguration",
                "ServerSideEncryptionConfigurationNotFoundError",
            )
        }

    async def put_bucket_encryption(
        self, Bucket: str, ServerSideEncryptionConfiguration: Dict[str, Any]
    ):
        return self._put(
            "put_bucket_encryption",
            Bucket,
            "ServerSideEncryptionConfiguration",
            ServerSideEncryptionConfiguration,
        )

    async def delete_bucket_encryption(self, Bucket: str):
        return self._delete("delete_bucket_encryption", Bucket, "ServerSideEncryptionConfiguration")

    async def get_object_lock_configuration(self, Bucket: str):
        self._record("get_object_lock_configuration", {"Bucket": Bucket})
        bucket = self._bucket(Bucket)
        if not bucket.object_lock_enabled:
            raise client_error("ObjectLockConfigurationNotFoundError")
        stored = bucket.config.get("ObjectLockConfiguration") or {"ObjectLockEnabled": "Enabled"}
        return {"ObjectLockConfiguration": copy.deepcopy(stored)}

    async def put_object_lock_configuration(
        self, Bucket: str, ObjectLockConfiguration: Dict[str, Any]
    ):
        self._record(
            "put_object_lock_configuration",
            {"Bucket": Bucket, "ObjectLockConfiguration": ObjectLockConfiguration},
        )
        bucket = self._bucket(Bucket)
        if not bucket.object_lock_enabled:
            raise client_error("InvalidBucketState", "Object Lock configuration cannot be enabled")
        bucket.config["ObjectLockConfiguration"] = copy.deepcopy(ObjectLockConfiguration)
        return {}

    async def get_bucket_tagging(self, Bucket: str):
        return self._get("get_bucket_tagging", Bucket, "Tagging", "NoSuchTagSet")

    async def put_bucket_tagging(self, Bucket: str, Tagging: Dict[str, Any]):
        return self._put("put_bucket_tagging", Bucket, "Tagging", Tagging)

    async def delete_bucket_tagging(self, Bucket: str):
        return self._delete("delete_bucket_tagging", Bucket, "Tagging")


class _ClientContext:
    def __init__(self, client: FakeS3Client):
        self.client = client

    async def __aenter__(self) -> FakeS3Client:
        return self.client

    async def __aexit__(self, *exc_info) -> None:
        return None


class FakeSession:
    """Stands in for an aiobotocore session; every client shares one store."""

    def __init__(self, client: FakeS3Client):
        self.client = client
        self.created: List[Dict[str, Any]] = []

    def create_client(self, service_name: str, region_name: str | None = None, **kwargs):
        assert service_name == "s3"
        self.created.append({"region_name": region_name, **kwargs})
        self.client.region = region_name
        return _ClientContext(self.client)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def fake_session(fake_s3: FakeS3Client) -> FakeSession:
    return FakeSession(fake_s3)


@pytest.fixture
def test_config(temp_dir: Path):
    """Engine configuration with short retry deadlines."""
    from s3recon.config import EngineConfig

    return EngineConfig(
        region="us-east-1",
        create_timeout=1.0,
        facet_timeout=1.0,
        retry_interval=0.01,
        max_retry_interval=0.05,
        vault_path=temp_dir / "vault.db",
        max_destroy_rounds=5,
    )


@pytest_asyncio.fixture
async def vault_db_path(temp_dir: Path) -> Path:
    """Create a temporary vault database."""
    from s3recon.vault import init_vault_db

    db_path = temp_dir / "vault.db"
    await init_vault_db(db_path)
    return db_path


@pytest_asyncio.fixture
async def test_state(test_config, fake_session):
    """Reconciler state backed by the fake session and a temporary vault."""
    from s3recon.core import initialize_reconciler_state

    state = await initialize_reconciler_state(test_config, session=fake_session)
    yield state


@pytest_asyncio.fixture
async def memory_state(test_config, fake_session):
    """Reconciler state without a vault."""
    from s3recon.core import initialize_reconciler_state

    state = await initialize_reconciler_state(test_config, session=fake_session, use_vault=False)
    yield state


@pytest.fixture
def sync_context(test_config):
    """Factory for facet synchronizer contexts."""
    from s3recon.facets import SyncContext
    from s3recon.model import DesiredState

    def make(desired=None, previous=None, creating=False, bucket="test-bucket"):
        return SyncContext(
            bucket=bucket,
            desired=desired or DesiredState(bucket=bucket),
            previous=previous,
            creating=creating,
            config=test_config,
        )

    return make


# ============================================================================
# Moto server
# ============================================================================

@pytest.fixture(scope="session")
def moto_endpoint() -> Generator[str, None, None]:
    """
    Run a moto server for the whole session and return its endpoint URL.

    Buckets outlive individual tests, so every test picks its own names.
    """
    from moto.server import ThreadedMotoServer

    server = ThreadedMotoServer(ip_address="127.0.0.1", port=0, verbose=False)
    server.start()
    host, port = server.get_host_and_port()
    yield f"http://{host}:{port}"
    server.stop()


@pytest.fixture
def moto_config(test_config, moto_endpoint: str):
    """Engine configuration pointed at the moto server."""
    from dataclasses import replace

    return replace(test_config, endpoint_url=moto_endpoint)


@pytest_asyncio.fixture
async def moto_s3_client(moto_endpoint: str):
    """
    Create an aiobotocore S3 client against the moto server.

    This provides a fully functional S3 mock for testing.
    """
    from aiobotocore.session import get_session

    session = get_session()
    async with session.create_client(
        "s3",
        region_name="us-east-1",
        endpoint_url=moto_endpoint,
    ) as client:
        yield client


@pytest_asyncio.fixture
async def moto_state(moto_config):
    """Reconciler state talking to the moto server through a real session."""
    from s3recon.core import initialize_reconciler_state

    state = await initialize_reconciler_state(moto_config, use_vault=False)
    yield state


@pytest.fixture
def unique_bucket():
    """Factory for bucket names no other test uses."""
    from ulid import ULID

    def make(prefix: str = "moto") -> str:
        return f"{prefix}-{str(ULID()).lower()}"

    return make
