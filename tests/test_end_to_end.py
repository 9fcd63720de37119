#!/usr/bin/env python3

"""
End-to-end tests for complete mirror runs against an in-memory repository.
"""

import os
import hashlib
import pytest
from unittest.mock import patch

from rpmmirror.config.manager import MirrorConfig
from rpmmirror.errors import FetchError, IntegrityError, StorageError, UnknownChecksumError
from rpmmirror.storage.manager import StorageManager
from rpmmirror.sync.policy import ContinueOnFailure
from rpmmirror.sync.runner import RepositoryMirror


def read(path):
    with open(path, 'rb') as f:
        return f.read()


class TestMirrorRunIntegration:
    """Test full mirror runs"""

    def test_fresh_mirror(self, fake_repo, mirror_config):
        """Test a first run fetches every package and metadata file"""
        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        destination = mirror_config.destination
        for package in fake_repo.packages:
            assert read(os.path.join(destination, package['href'])) == package['content']
        assert read(os.path.join(destination, fake_repo.primary_href)) == fake_repo.files[fake_repo.origin + fake_repo.primary_href]
        assert read(os.path.join(destination, fake_repo.extra_metadata[0]['href'])) == b"<filelists/>"
        assert read(os.path.join(destination, "repodata", "repomd.xml")) == fake_repo.repomd

        assert report.succeeded
        assert report.revision == fake_repo.revision
        assert report.packages.completed == 3
        assert report.packages.downloaded == 3
        assert report.metadata_downloaded == 2
        assert report.repomd_written is True

    def test_run_order(self, fake_repo, mirror_config):
        """Test packages come first and repomd.xml is fetched again last"""
        RepositoryMirror(mirror_config, fake_repo.client()).run()

        urls = fake_repo.requested_urls
        repomd = fake_repo.origin + "repodata/repomd.xml"
        package_urls = {fake_repo.origin + p['href'] for p in fake_repo.packages}
        filelists = fake_repo.origin + fake_repo.extra_metadata[0]['href']

        assert urls[0] == repomd
        assert urls[1] == fake_repo.origin + fake_repo.primary_href
        assert set(urls[2:5]) == package_urls
        assert urls[-1] == repomd
        assert urls.index(filelists) > 4

    def test_second_run_downloads_no_packages(self, fake_repo, mirror_config):
        """Test a synced mirror only refetches the index files"""
        RepositoryMirror(mirror_config, fake_repo.client()).run()
        fake_repo.reset_calls()

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        package_urls = {fake_repo.origin + p['href'] for p in fake_repo.packages}
        assert not package_urls & set(fake_repo.requested_urls)
        assert report.packages.verified == 3
        assert report.packages.downloaded == 0
        assert report.metadata_verified == 2
        assert report.metadata_downloaded == 0
        # repomd.xml twice (index and final copy) plus primary for the listing
        assert len(fake_repo.requested_urls) == 3

    def test_changed_package_is_replaced(self, fake_repo, mirror_config):
        RepositoryMirror(mirror_config, fake_repo.client()).run()
        fake_repo.packages[1]['content'] = b"rebuilt goodbye"
        fake_repo.packages[1]['checksum'] = hashlib.sha256(b"rebuilt goodbye").hexdigest()
        fake_repo.build()
        fake_repo.reset_calls()

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert report.packages.downloaded == 1
        assert read(os.path.join(mirror_config.destination, fake_repo.packages[1]['href'])) == b"rebuilt goodbye"

    def test_metadata_only(self, fake_repo, mirror_config):
        mirror_config.metadata_only = True

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert report.packages is None
        for package in fake_repo.packages:
            assert not os.path.exists(os.path.join(mirror_config.destination, package['href']))
        assert os.path.exists(os.path.join(mirror_config.destination, "repodata", "repomd.xml"))
        assert report.metadata_downloaded == 2

    def test_data_only(self, fake_repo, mirror_config):
        mirror_config.data_only = True

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert report.packages.downloaded == 3
        assert report.repomd_written is False
        assert not os.path.exists(os.path.join(mirror_config.destination, "repodata"))

    def test_distinct_metadata_and_data_roots(self, fake_repo, temp_dir):
        config = MirrorConfig(
            repo_url=fake_repo.origin,
            destination=os.path.join(temp_dir, "unused"),
            metadata_path=os.path.join(temp_dir, "meta"),
            data_path=os.path.join(temp_dir, "data"),
            check_disk_space=False,
        )

        RepositoryMirror(config, fake_repo.client()).run()

        for package in fake_repo.packages:
            assert os.path.exists(os.path.join(temp_dir, "data", package['href']))
            assert not os.path.exists(os.path.join(temp_dir, "meta", package['href']))
        assert os.path.exists(os.path.join(temp_dir, "meta", "repodata", "repomd.xml"))
        assert not os.path.exists(os.path.join(temp_dir, "data", "repodata"))

    def test_stale_partials_removed(self, fake_repo, mirror_config):
        leftover = os.path.join(mirror_config.destination, "Packages", "h", "hello.rpm.part")
        os.makedirs(os.path.dirname(leftover))
        with open(leftover, 'wb') as f:
            f.write(b"interrupted")

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert report.removed_partials == 1
        assert not os.path.exists(leftover)

    @pytest.mark.parametrize("extension", [".gz", ".bz2", ".xz", ""])
    def test_primary_compression_formats(self, repository_factory, mirror_config, extension):
        repo = repository_factory(primary_extension=extension)
        repo.add_package("hello")
        repo.build()

        report = RepositoryMirror(mirror_config, repo.client()).run()

        assert report.packages.downloaded == 1


class TestMirrorRunFailures:
    """Test how faults end or degrade a run"""

    def test_missing_index_is_fatal(self, repository_factory, mirror_config):
        repo = repository_factory()

        with pytest.raises(FetchError):
            RepositoryMirror(mirror_config, repo.client()).run()

    def test_unknown_checksum_in_index_fails_before_downloads(self, repository_factory, mirror_config):
        """Test an unsupported checksum type stops the run with nothing else fetched"""
        repo = repository_factory()
        repo.add_package("hello")
        repo.build()
        repo.files[repo.origin + "repodata/repomd.xml"] = repo.repomd.replace(
            b'<open-checksum type="sha256">', b'<open-checksum type="sha512">'
        )

        with pytest.raises(UnknownChecksumError):
            RepositoryMirror(mirror_config, repo.client()).run()

        assert repo.requested_urls == [repo.origin + "repodata/repomd.xml"]

    def test_corrupt_package_aborts_and_keeps_old_index(self, fake_repo, mirror_config):
        """Test a default run stops on a corrupt package without writing repomd.xml"""
        fake_repo.corrupt(fake_repo.packages[0]['href'])

        with pytest.raises(IntegrityError):
            RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert not os.path.exists(os.path.join(mirror_config.destination, fake_repo.packages[0]['href']))
        assert not os.path.exists(os.path.join(mirror_config.destination, "repodata", "repomd.xml"))

    def test_continue_on_error_reports_failures(self, fake_repo, mirror_config):
        """Test a tolerant run mirrors everything else but does not publish a new index"""
        mirror_config.continue_on_error = True
        fake_repo.corrupt(fake_repo.packages[0]['href'])

        report = RepositoryMirror(mirror_config, fake_repo.client()).run()

        assert not report.succeeded
        assert [f.name for f in report.failures] == [fake_repo.packages[0]['href']]
        assert report.packages.downloaded == 2
        assert report.metadata_downloaded == 2
        assert report.repomd_written is False
        assert not os.path.exists(os.path.join(mirror_config.destination, "repodata", "repomd.xml"))

    def test_missing_metadata_file_recorded(self, fake_repo, mirror_config):
        del fake_repo.files[fake_repo.origin + fake_repo.extra_metadata[0]['href']]

        report = RepositoryMirror(mirror_config, fake_repo.client(), policy=ContinueOnFailure()).run()

        assert isinstance(report.failures[0].error, FetchError)
        assert report.failures[0].error.status_code == 404
        assert report.repomd_written is False

    def test_disk_check_blocks_run(self, fake_repo, temp_dir):
        config = MirrorConfig(repo_url=fake_repo.origin, destination=os.path.join(temp_dir, "mirror"))
        storage = StorageManager(config)

        with patch.object(storage, 'free_space', return_value=10):
            with pytest.raises(StorageError):
                RepositoryMirror(config, fake_repo.client(), storage=storage).run()

        package_urls = {fake_repo.origin + p['href'] for p in fake_repo.packages}
        assert not package_urls & set(fake_repo.requested_urls)

    def test_disk_check_counts_only_pending_packages(self, fake_repo, temp_dir):
        config = MirrorConfig(repo_url=fake_repo.origin, destination=os.path.join(temp_dir, "mirror"))
        storage = StorageManager(config)
        RepositoryMirror(config, fake_repo.client(), storage=storage).run()

        with patch.object(storage, 'check_free_space') as mock_check:
            RepositoryMirror(config, fake_repo.client(), storage=storage).run()

        mock_check.assert_called_once_with(0, config.data_path)
