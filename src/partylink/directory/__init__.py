"""Directory service client."""

from partylink.directory.client import DirectoryClient, DirectoryService, create_directory_client

__all__ = ["DirectoryClient", "DirectoryService", "create_directory_client"]
