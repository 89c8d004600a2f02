"""Helpers for running etcd: volume selection and mounting, cloud URL and metadata handling, member lookups and command-line tools."""

__version__ = "0.1.0"