import os

import pytest

from Config import Config
from Errors import ConfigError

JOBS_YAML = """
jobs:
  - name: postgres
    schedule: "0 3 * * *"
    timeout: 3600
    script:
      - cd ${TEMP_DIR}
      - pg_dump mydb > dump.sql
    filepath_to_upload: ${TEMP_DIR}/dump.sql
  - name: files
    schedule: "*/15 * * * *"
    keep_workspace: true
    script:
      - tar czf /tmp/files.tar.gz /srv/files
    filepath_to_upload: /tmp/files.tar.gz
"""

@pytest.fixture()
def jobs_file(tmp_path):
    path = tmp_path / 'backups.yaml'
    path.write_text(JOBS_YAML)
    return path

@pytest.fixture()
def environ(jobs_file):
    return {
        'STORAGE_S3_ENDPOINT': 'minio.example.com:9000',
        'STORAGE_S3_REGION': 'eu-west-1',
        'STORAGE_S3_BUCKET': 'backups',
        'STORAGE_S3_ACCESS_KEY': 'access',
        'STORAGE_S3_SECRET_KEY': 'secret',
        'CONFIG_PATH': str(jobs_file),
    }

def write_jobs(tmp_path, text):
    path = tmp_path / 'jobs.yaml'
    path.write_text(text)
    return str(path)

def test_load_full_config(tmp_path, environ):
    config = Config(str(tmp_path), environ).config

    assert config['storage'] == {
        'endpoint': 'https://minio.example.com:9000',
        'region': 'eu-west-1',
        'bucket': 'backups',
        'access_key': 'access',
        'secret_key': 'secret',
        'create_if_missing': False,
    }
    assert config['scheduler'] == {'timezone': 'UTC', 'max_workers': 10, 'misfire_grace_time': 60}
    assert config['log'] == {'level': 'INFO', 'path': None}
    assert config['keep_workspace'] is False

    postgres, files = config['jobs']
    assert postgres.name == 'postgres'
    assert postgres.schedule == '0 3 * * *'
    assert postgres.commands == ('cd ${TEMP_DIR}', 'pg_dump mydb > dump.sql')
    assert postgres.artifact_path == '${TEMP_DIR}/dump.sql'
    assert postgres.timeout == 3600
    assert postgres.keep_workspace is False
    assert files.timeout is None
    assert files.keep_workspace is True

def test_optional_settings(tmp_path, environ):
    environ.update({
        'STORAGE_S3_ENDPOINT': 'http://localhost:9000',
        'STORAGE_S3_AUTO_CREATE_BUCKET': 'yes',
        'SCHEDULER_TIMEZONE': 'Europe/Paris',
        'SCHEDULER_MAX_WORKERS': '2',
        'BACKUP_KEEP_WORKSPACE': 'true',
        'LOG_LEVEL': 'debug',
    })
    config = Config(str(tmp_path), environ).config

    assert config['storage']['endpoint'] == 'http://localhost:9000'
    assert config['storage']['create_if_missing'] is True
    assert config['scheduler']['timezone'] == 'Europe/Paris'
    assert config['scheduler']['max_workers'] == 2
    assert config['log']['level'] == 'DEBUG'
    assert all(job.keep_workspace for job in config['jobs'])

def test_insecure_endpoint():
    assert Config.normalize_endpoint('minio:9000', secure = False) == 'http://minio:9000'
    assert Config.normalize_endpoint('https://s3.amazonaws.com', secure = False) == 'https://s3.amazonaws.com'

def test_default_config_path(tmp_path, environ):
    del environ['CONFIG_PATH']
    os.makedirs(str(tmp_path / 'etc'))
    (tmp_path / 'etc' / 'backups.yaml').write_text(JOBS_YAML)

    config = Config(str(tmp_path), environ).config
    assert config['config_path'] == os.path.join(str(tmp_path), 'etc', 'backups.yaml')

@pytest.mark.parametrize('name', [
    'STORAGE_S3_ENDPOINT',
    'STORAGE_S3_REGION',
    'STORAGE_S3_BUCKET',
    'STORAGE_S3_ACCESS_KEY',
    'STORAGE_S3_SECRET_KEY',
])
def test_missing_required_variable(tmp_path, environ, name):
    del environ[name]
    with pytest.raises(ConfigError, match = name):
        Config(str(tmp_path), environ)

def test_invalid_boolean(tmp_path, environ):
    environ['STORAGE_S3_AUTO_CREATE_BUCKET'] = 'maybe'
    with pytest.raises(ConfigError, match = 'STORAGE_S3_AUTO_CREATE_BUCKET'):
        Config(str(tmp_path), environ)

@pytest.mark.parametrize('value', ['zero', '0', '-1'])
def test_invalid_integer(tmp_path, environ, value):
    environ['SCHEDULER_MAX_WORKERS'] = value
    with pytest.raises(ConfigError, match = 'SCHEDULER_MAX_WORKERS'):
        Config(str(tmp_path), environ)

def test_unreadable_jobs_file(tmp_path):
    with pytest.raises(ConfigError, match = 'failed to read'):
        Config.load_jobs(str(tmp_path / 'missing.yaml'))

def test_malformed_yaml(tmp_path):
    with pytest.raises(ConfigError, match = 'failed to parse'):
        Config.load_jobs(write_jobs(tmp_path, 'jobs: [\n'))

def test_jobs_list_required(tmp_path):
    with pytest.raises(ConfigError, match = 'jobs'):
        Config.load_jobs(write_jobs(tmp_path, 'tasks: []\n'))

def test_empty_jobs_list_is_allowed(tmp_path):
    assert Config.load_jobs(write_jobs(tmp_path, 'jobs: []\n')) == []

def test_duplicate_names(tmp_path):
    text = """
jobs:
  - {name: db, schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a}
  - {name: db, schedule: "0 4 * * *", script: [ls], filepath_to_upload: /tmp/b}
"""
    with pytest.raises(ConfigError, match = 'duplicate'):
        Config.load_jobs(write_jobs(tmp_path, text))

@pytest.mark.parametrize('entry, message', [
    ('"not a mapping"', 'mapping'),
    ('{schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a}', 'name'),
    ('{name: "", schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a}', 'name'),
    ('{name: db, script: [ls], filepath_to_upload: /tmp/a}', 'schedule'),
    ('{name: db, schedule: "61 3 * * *", script: [ls], filepath_to_upload: /tmp/a}', 'invalid schedule'),
    ('{name: db, schedule: "0 3 * *", script: [ls], filepath_to_upload: /tmp/a}', 'invalid schedule'),
    ('{name: db, schedule: "0 3 * * *", script: [], filepath_to_upload: /tmp/a}', 'script'),
    ('{name: db, schedule: "0 3 * * *", script: "ls", filepath_to_upload: /tmp/a}', 'script'),
    ('{name: db, schedule: "0 3 * * *", script: [ls]}', 'filepath_to_upload'),
    ('{name: db, schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a, timeout: 0}', 'timeout'),
    ('{name: db, schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a, timeout: true}', 'timeout'),
    ('{name: db, schedule: "0 3 * * *", script: [ls], filepath_to_upload: /tmp/a, keep_workspace: "no"}', 'keep_workspace'),
])
def test_invalid_job_entries(tmp_path, entry, message):
    with pytest.raises(ConfigError, match = message):
        Config.load_jobs(write_jobs(tmp_path, 'jobs:\n  - %s\n' % (entry)))

def test_unknown_timezone(tmp_path, environ):
    environ['SCHEDULER_TIMEZONE'] = 'Mars/Olympus_Mons'
    with pytest.raises(ConfigError, match = 'SCHEDULER_TIMEZONE'):
        Config(str(tmp_path), environ)

@pytest.mark.parametrize('value', ['verbose', 'TRACE', '10'])
def test_invalid_log_level(tmp_path, environ, value):
    environ['LOG_LEVEL'] = value
    with pytest.raises(ConfigError, match = 'LOG_LEVEL'):
        Config(str(tmp_path), environ)

def test_log_level_is_case_insensitive(tmp_path, environ):
    environ['LOG_LEVEL'] = 'warning'

    assert Config(str(tmp_path), environ).config['log']['level'] == 'WARNING'
