from .cache_key import key_for, InsufficientSpecificationError
from .archives import ArchiveError, SecurityError, archive_types
from .fetcher import (SourceFetcher, UrlFetcher, GitFetcher, PathFetcher, create_fetcher,
                      SourceUnavailableError, ChecksumMismatchError)
from .remote_store import (RemoteStoreError, S3RemoteStore, DirectoryRemoteStore, SSHRemoteStore,
                           create_remote_store, remote_cache_status)
from .remote_cache import RemoteSourceCache, PopulateReport
from .builder import ProjectBuilder, StepRunner, BuildFailedError
from .hasher import file_checksum, tree_checksum
