"""
Tests for the S3 object store.
"""
from io import BytesIO
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from swingscore.core.errors import PermanentStorage, TransientStorage
from swingscore.services.object_store import S3ObjectStore


def client_error(code, status):
    return ClientError({"Error": {"Code": code}, "ResponseMetadata": {"HTTPStatusCode": status}}, "PutObject")


@pytest.fixture
def s3_client():
    return MagicMock()


def test_put(s3_client):
    store = S3ObjectStore(client=s3_client, bucket="test-bucket")
    blob = BytesIO(b"video")

    assert store.put("swings/u1/s1/swing.mp4", blob, "video/mp4") == "swings/u1/s1/swing.mp4"
    s3_client.upload_fileobj.assert_called_once_with(
        blob, "test-bucket", "swings/u1/s1/swing.mp4", ExtraArgs={"ContentType": "video/mp4"}
    )


def test_presigned_url(s3_client):
    s3_client.generate_presigned_url.return_value = "https://test-bucket.s3.amazonaws.com/key?sig"
    store = S3ObjectStore(client=s3_client, bucket="test-bucket")

    assert store.url("key", expiration=60) == "https://test-bucket.s3.amazonaws.com/key?sig"
    s3_client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "test-bucket", "Key": "key"}, ExpiresIn=60
    )


def test_delete(s3_client):
    S3ObjectStore(client=s3_client, bucket="test-bucket").delete("key")
    s3_client.delete_object.assert_called_once_with(Bucket="test-bucket", Key="key")


@pytest.mark.parametrize(
    "error,expected",
    [
        (client_error("SlowDown", 503), TransientStorage),
        (client_error("InternalError", 500), TransientStorage),
        (client_error("AccessDenied", 403), PermanentStorage),
        (client_error("NoSuchBucket", 404), PermanentStorage),
        (EndpointConnectionError(endpoint_url="https://s3.amazonaws.com"), TransientStorage),
    ],
)
def test_put_error_mapping(s3_client, error, expected):
    s3_client.upload_fileobj.side_effect = error

    with pytest.raises(expected):
        S3ObjectStore(client=s3_client, bucket="test-bucket").put("key", BytesIO(b"x"))
