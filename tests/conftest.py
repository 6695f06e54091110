import boto3
import pytest
from moto import mock_aws

from utils.blob_store import LocalJsonStore
from utils.review_store import ReviewStore

BUCKET = "sensai-eval-test"


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake credentials so boto3 never looks for a real profile."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")


@pytest.fixture
def s3_bucket(aws_credentials):
    """
    Spins up a mock S3 instance, creates the test bucket and yields its name.

    After the test, everything is torn down automatically.
    """
    with mock_aws():
        s3 = boto3.client("s3", region_name="us-east-1")
        s3.create_bucket(Bucket=BUCKET)
        yield BUCKET


@pytest.fixture
def local_store(tmp_path):
    return ReviewStore(LocalJsonStore(tmp_path / "store"), folder="reviews")
