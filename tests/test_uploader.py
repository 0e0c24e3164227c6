"""
Unit tests for the upload stage and object store backends.

Tests the uploader API without real cloud credentials: the boto3 client is a
MagicMock and the GCS client is patched, as in the rest of the suite.
"""

import io
from unittest.mock import MagicMock, patch

import pytest

from image_uploader.errors import UnreadableSource, UploadFailed, UpstreamFetchFailed
from image_uploader.uploader import (
    GCSObjectStore,
    S3ObjectStore,
    create_store,
    destination_options,
    upload_stream,
)
from image_uploader.utils.config import DEFAULT_DESTINATION_OPTIONS, PipelineConfig
from tests.helpers import IMAGE_BYTES, FailingReadStream, FakeStore


class FakeResponse(io.BytesIO):
    """Readable body proxying an HTTP response."""

    def __init__(self, data: bytes, status: int) -> None:
        super().__init__(data)
        self.status = status


class TestDestinationOptions:
    """Test option merging."""

    def test_overrides_win_and_defaults_untouched(self):
        defaults = dict(DEFAULT_DESTINATION_OPTIONS)

        merged = destination_options(defaults, {"ACL": "private"}, "b", "k")

        assert merged == {
            "ACL": "private",
            "StorageClass": "STANDARD",
            "ContentType": "image/jpeg",
            "Bucket": "b",
            "Key": "k",
        }
        assert defaults == dict(DEFAULT_DESTINATION_OPTIONS)

    def test_bucket_and_key_cannot_be_overridden(self):
        merged = destination_options({}, {"Bucket": "other", "Key": "other"}, "b", "k")

        assert merged["Bucket"] == "b"
        assert merged["Key"] == "k"

    def test_no_overrides(self):
        assert destination_options({"ACL": "public-read"}, None, "b", "k") == {
            "ACL": "public-read",
            "Bucket": "b",
            "Key": "k",
        }


class TestUploadStream:
    """Test upload_stream against a fake store."""

    def test_successful_upload(self):
        store = FakeStore()
        options = destination_options(DEFAULT_DESTINATION_OPTIONS, {}, "b", "k.jpg")

        location = upload_stream(io.BytesIO(IMAGE_BYTES), options, store)

        assert location == "https://b.s3.amazonaws.com/k.jpg"
        assert store.uploads[0]["body"] == IMAGE_BYTES
        assert store.uploads[0]["bucket"] == "b"
        assert store.uploads[0]["key"] == "k.jpg"
        assert "Bucket" not in store.uploads[0]["options"]
        assert store.uploads[0]["options"]["ACL"] == "public-read"

    def test_closed_stream_rejected(self):
        stream = io.BytesIO(IMAGE_BYTES)
        stream.close()
        store = FakeStore()

        with pytest.raises(UnreadableSource):
            upload_stream(stream, destination_options({}, {}, "b", "k"), store)

        assert store.uploads == []

    def test_none_stream_rejected(self):
        with pytest.raises(UnreadableSource):
            upload_stream(None, destination_options({}, {}, "b", "k"), FakeStore())

    def test_upstream_http_error(self):
        """Test a stream proxying a non-200 response is refused."""
        store = FakeStore()

        with pytest.raises(UpstreamFetchFailed) as exc_info:
            upload_stream(FakeResponse(b"gone", 404), destination_options({}, {}, "b", "k"), store)

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == "Failed to download: 404 error."
        assert store.uploads == []

    def test_upstream_http_ok(self):
        store = FakeStore()

        upload_stream(FakeResponse(IMAGE_BYTES, 200), destination_options({}, {}, "b", "k"), store)

        assert store.uploads[0]["body"] == IMAGE_BYTES

    def test_store_failure_wrapped(self):
        store = FakeStore(fail_with=RuntimeError("AccessDenied"))

        with pytest.raises(UploadFailed) as exc_info:
            upload_stream(io.BytesIO(IMAGE_BYTES), destination_options({}, {}, "b", "k"), store)

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert exc_info.value.context == {"bucket": "b", "key": "k"}
        assert "AccessDenied" in str(exc_info.value)

    def test_read_error_during_transfer_wrapped(self):
        """Test a stream failing after the first chunk becomes UploadFailed."""
        store = FakeStore()

        with pytest.raises(UploadFailed) as exc_info:
            upload_stream(
                FailingReadStream(IMAGE_BYTES), destination_options({}, {}, "b", "k"), store
            )

        assert isinstance(exc_info.value.cause, OSError)
        assert exc_info.value.context == {"bucket": "b", "key": "k"}
        assert "Input/output error" in str(exc_info.value)
        assert store.uploads == []

    def test_empty_location_is_a_failure(self):
        store = MagicMock()
        store.name = "mock"
        store.upload_fileobj.return_value = ""

        with pytest.raises(UploadFailed):
            upload_stream(io.BytesIO(IMAGE_BYTES), destination_options({}, {}, "b", "k"), store)


class TestS3ObjectStore:
    """Test the boto3-backed store."""

    def test_upload_passes_extra_args(self):
        client = MagicMock()
        store = S3ObjectStore(client=client)
        stream = io.BytesIO(IMAGE_BYTES)

        location = store.upload_fileobj(
            stream,
            "images",
            "cats/1.jpg",
            {"ACL": "public-read", "ContentType": "image/jpeg", "Unknown": "x"},
        )

        client.upload_fileobj.assert_called_once_with(
            Fileobj=stream,
            Bucket="images",
            Key="cats/1.jpg",
            ExtraArgs={"ACL": "public-read", "ContentType": "image/jpeg"},
        )
        assert location == "https://images.s3.amazonaws.com/cats/1.jpg"

    def test_location_variants(self):
        assert (
            S3ObjectStore(region="eu-west-1", client=MagicMock()).location("b", "k.jpg")
            == "https://b.s3.eu-west-1.amazonaws.com/k.jpg"
        )
        assert (
            S3ObjectStore(region="us-east-1", client=MagicMock()).location("b", "k.jpg")
            == "https://b.s3.amazonaws.com/k.jpg"
        )
        assert (
            S3ObjectStore(endpoint_url="http://localhost:9000/", client=MagicMock()).location("b", "k.jpg")
            == "http://localhost:9000/b/k.jpg"
        )

    def test_location_quotes_key(self):
        store = S3ObjectStore(client=MagicMock())

        assert store.location("b", "my cats/1 2.jpg") == "https://b.s3.amazonaws.com/my%20cats/1%202.jpg"

    def test_client_error_propagates(self):
        client = MagicMock()
        client.upload_fileobj.side_effect = RuntimeError("NoSuchBucket")

        with pytest.raises(RuntimeError):
            S3ObjectStore(client=client).upload_fileobj(io.BytesIO(b"x"), "b", "k", {})

    @patch("boto3.client")
    def test_builds_boto3_client(self, mock_boto_client):
        S3ObjectStore(region="eu-west-1", endpoint_url="http://minio:9000")

        args, kwargs = mock_boto_client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "eu-west-1"
        assert kwargs["endpoint_url"] == "http://minio:9000"


class TestGCSObjectStore:
    """Test the google-cloud-storage store."""

    @patch("google.cloud.storage.Client")
    def test_upload_translates_options(self, mock_client_class):
        mock_client = MagicMock()
        mock_bucket = MagicMock()
        mock_blob = MagicMock()
        mock_client_class.return_value = mock_client
        mock_client.bucket.return_value = mock_bucket
        mock_bucket.blob.return_value = mock_blob
        mock_blob.public_url = "https://storage.googleapis.com/images/cats/1.jpg"

        store = GCSObjectStore(timeout_seconds=60)
        stream = io.BytesIO(IMAGE_BYTES)
        location = store.upload_fileobj(
            stream,
            "images",
            "cats/1.jpg",
            {
                "ACL": "public-read",
                "StorageClass": "STANDARD_IA",
                "ContentType": "image/jpeg",
                "Metadata": {"source": "test"},
            },
        )

        assert location == "https://storage.googleapis.com/images/cats/1.jpg"
        mock_client.bucket.assert_called_once_with("images")
        mock_bucket.blob.assert_called_once_with("cats/1.jpg")
        assert mock_blob.storage_class == "NEARLINE"
        assert mock_blob.metadata == {"source": "test"}
        mock_blob.upload_from_file.assert_called_once_with(
            stream,
            content_type="image/jpeg",
            timeout=60,
            predefined_acl="publicRead",
        )

    @patch("google.cloud.storage.Client")
    def test_upload_without_acl(self, mock_client_class):
        mock_blob = mock_client_class.return_value.bucket.return_value.blob.return_value

        GCSObjectStore().upload_fileobj(io.BytesIO(b"x"), "b", "k", {})

        _, kwargs = mock_blob.upload_from_file.call_args
        assert "predefined_acl" not in kwargs
        assert kwargs["timeout"] == 300


class TestCreateStore:
    """Test backend selection."""

    @patch("boto3.client")
    def test_default_is_s3(self, mock_boto_client):
        store = create_store(PipelineConfig(aws_region="eu-west-1"))

        assert isinstance(store, S3ObjectStore)
        assert store.region == "eu-west-1"

    @patch("google.cloud.storage.Client")
    def test_gcs_backend(self, mock_client_class):
        store = create_store(PipelineConfig(storage_backend="gcs", upload_timeout_seconds=42))

        assert isinstance(store, GCSObjectStore)
        assert store.timeout_seconds == 42
