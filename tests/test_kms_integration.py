import os

import pytest

from keyshield.errors import BackendUnavailable
from keyshield.kms.file_kms import FileMasterKey
from keyshield.metadata.model import KeySource, Metadata


def test_file_key_roundtrip(tmp_path):
    key_file = tmp_path / 'kms.key'
    mk = FileMasterKey(str(key_file))
    assert key_file.exists()
    assert oct(os.stat(key_file).st_mode & 0o777) == '0o600'

    data_key = os.urandom(32)
    mk.encrypt(data_key)
    assert mk.decrypt() == data_key


def test_file_key_tampered_ciphertext(tmp_path):
    mk = FileMasterKey(str(tmp_path / 'kms.key'))
    mk.encrypt(b'data key')
    other = FileMasterKey(str(tmp_path / 'other.key'), enc_key=mk.enc_key)
    with pytest.raises(BackendUnavailable):
        other.decrypt()


def test_metadata_envelope_roundtrip(tmp_path):
    md = Metadata(key_sources=[
        KeySource('file', [FileMasterKey(str(tmp_path / 'a.key')), FileMasterKey(str(tmp_path / 'b.key'))]),
    ])
    data_key = os.urandom(32)
    report = md.update_master_keys(data_key)
    assert report.ok

    # Losing one master key still leaves the data key recoverable
    os.remove(tmp_path / 'a.key')
    restored = Metadata.from_dict(md.to_dict())
    assert restored.get_data_key() == data_key
