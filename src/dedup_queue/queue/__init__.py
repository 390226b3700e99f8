"""Filesystem-backed deduplicating action queue.

The queue is a directory of self-contained entry files keyed by a content
identifier. Publishing an entry is a hard link from a fully written temporary
file into its slot, so concurrent enqueuers race on a single atomic
create-if-absent and readers never see a partial entry. Processing passes are
serialized by an atomic ``mkdir`` of the lock directory.
"""
