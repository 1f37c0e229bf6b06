"""
Object Storage Module

This module wraps an S3-compatible client (AWS S3, MinIO, Ceph...)
and exposes the three operations the backup service needs.

Responsibilities:
- Check and create the destination bucket at startup
- Upload run artifacts with their detected content type
"""

## version related
__author__ = "Kyle"
__version__ = "0.0.1"
__email__ = "kyle@hacking-linux.com"

## import 3rd pkgs
import boto3
from boto3.exceptions import Boto3Error
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

## import private pkgs
from Errors import BucketError, UploadError

## codes returned by HeadBucket for a bucket that does not exist
_MISSING_BUCKET_CODES = ('404', 'NoSuchBucket', 'NotFound')

class Storage(object):
    """
    S3 storage backend.
    """

    def __init__(self, logger: object, client: object) -> None:
        """
        Initialize the storage backend.

        Args:
            logger (object): Application logger
            client (object): boto3 S3 client

        Returns:
            None
        """

        self.logger = logger
        self.client = client

    @classmethod
    def from_config(cls, logger: object, storage: dict) -> 'Storage':
        """
        Build a storage backend from the 'storage' config section.

        Args:
            logger (object): Application logger
            storage (dict): Storage configuration

        Returns:
            Storage: Storage backend
        """

        logger.info({'endpoint': storage['endpoint'], 'region': storage['region']})
        client = boto3.client(
            's3',
            endpoint_url = storage['endpoint'],
            region_name = storage['region'],
            aws_access_key_id = storage['access_key'],
            aws_secret_access_key = storage['secret_key'],
            config = BotoConfig(s3 = {'addressing_style': 'path'}),
        )
        return cls(logger, client)

    def bucket_exists(self, bucket: str) -> bool:
        """
        Check whether a bucket exists.

        Args:
            bucket (str): Bucket name

        Returns:
            bool: True if the bucket exists

        Raises:
            BucketError: Storage could not answer
        """

        try:
            self.client.head_bucket(Bucket = bucket)

        except ClientError as e:
            if e.response.get('Error', {}).get('Code') in _MISSING_BUCKET_CODES:
                return False

            raise BucketError('failed to check bucket %s: %s' % (bucket, e)) from e

        except BotoCoreError as e:
            raise BucketError('failed to check bucket %s: %s' % (bucket, e)) from e

        return True

    def create_bucket(self, bucket: str, region: str) -> None:
        """
        Create a bucket.

        Args:
            bucket (str): Bucket name
            region (str): Bucket region

        Returns:
            None

        Raises:
            BucketError: Bucket could not be created
        """

        kwargs = {'Bucket': bucket}

        ## us-east-1 is the implicit location and must not be sent
        if region and region != 'us-east-1':
            kwargs['CreateBucketConfiguration'] = {'LocationConstraint': region}

        try:
            self.client.create_bucket(**kwargs)

        except (BotoCoreError, ClientError) as e:
            raise BucketError('failed to create bucket %s: %s' % (bucket, e)) from e

        self.logger.info({'status': 'bucket was successfully created', 'bucket': bucket})

    def ensure_bucket(self, bucket: str, region: str, create_if_missing: bool) -> None:
        """
        Make sure the destination bucket is usable.

        Args:
            bucket (str): Bucket name
            region (str): Region used when creating the bucket
            create_if_missing (bool): Create the bucket when absent

        Returns:
            None

        Raises:
            BucketError: Bucket is missing and may not be created
        """

        self.logger.info({'status': 'start', 'bucket': bucket})
        if not self.bucket_exists(bucket):
            if not create_if_missing:
                raise BucketError('bucket %s does not exist' % (bucket))

            self.create_bucket(bucket, region)

        self.logger.info({'status': 'end', 'bucket': bucket})

    def put_object(self, bucket: str, name: str, source_path: str, content_type: str, logger: object = None) -> None:
        """
        Upload a file, streaming it with the managed transfer.

        Args:
            bucket (str): Bucket name
            name (str): Destination object name
            source_path (str): Local file to upload
            content_type (str): Content type stored with the object
            logger (object): Run logger, application logger by default

        Returns:
            None

        Raises:
            UploadError: Upload failed
        """

        logger = logger or self.logger
        logger.info({'status': 'uploading', 'bucket': bucket, 'object': name, 'content_type': content_type})

        try:
            self.client.upload_file(source_path, bucket, name, ExtraArgs = {'ContentType': content_type})

        except (Boto3Error, BotoCoreError, ClientError, OSError) as e:
            logger.error({'status': 'failed to upload the file to object storage', 'error': str(e)})
            raise UploadError('failed to upload %s to %s/%s: %s' % (source_path, bucket, name, e)) from e

        logger.info({'status': 'uploaded', 'bucket': bucket, 'object': name})
