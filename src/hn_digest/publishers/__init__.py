"""Digest publishing targets."""

from hn_digest.publishers.base import DigestContent, Publisher
from hn_digest.publishers.github import GitHubPublisher
from hn_digest.publishers.telegram import TelegramPublisher
from hn_digest.publishers.terminal import TerminalPublisher

__all__ = [
    "DigestContent",
    "GitHubPublisher",
    "Publisher",
    "TelegramPublisher",
    "TerminalPublisher",
]
