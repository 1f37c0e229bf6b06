"""Shared test fixtures."""

import logging

import pytest

from Job import Job
from Errors import UploadError

class FakeStorage(object):
    """Records uploads and the artifact content seen at upload time."""

    def __init__(self, error: Exception = None) -> None:
        self.error = error
        self.uploads = []

    def put_object(self, bucket, name, source_path, content_type, logger = None):
        if self.error is not None:
            raise self.error

        with open(source_path, 'rb') as fh:
            content = fh.read()

        self.uploads.append({
            'bucket': bucket,
            'name': name,
            'source_path': source_path,
            'content_type': content_type,
            'content': content,
        })

@pytest.fixture()
def logger(caplog):
    caplog.set_level(logging.DEBUG)
    return logging.getLogger('tests')

@pytest.fixture()
def storage():
    return FakeStorage()

@pytest.fixture()
def failing_storage():
    return FakeStorage(error = UploadError('bucket is gone'))

@pytest.fixture()
def make_job():
    def _make_job(**overrides):
        fields = {
            'name': 'nightly',
            'schedule': '0 3 * * *',
            'commands': ('echo ${BACKUP_ID} > ${TEMP_DIR}/out.txt',),
            'artifact_path': '${TEMP_DIR}/out.txt',
        }
        fields.update(overrides)
        return Job(**fields)

    return _make_job
