"""Key layout for the fast store.

Pointer keys hold the metadata of the live generation; data keys hold the
members of one immutable generation:

    {prefix}:{kind}:{segment}              -> RankedSetMeta JSON
    {prefix}:{kind}:{segment}:g{generation} -> sorted set
    {prefix}:lease:rebuild:{segment}        -> lease token
"""


def pointer_key(prefix: str, kind: str, segment: str) -> str:
    """Key of the pointer to the live generation of a RankedSet."""
    return f"{prefix}:{kind}:{segment}"


def data_key(prefix: str, kind: str, segment: str, generation: int) -> str:
    """Key of the members of one RankedSet generation."""
    return f"{prefix}:{kind}:{segment}:g{generation}"


def rebuild_lease_key(prefix: str, segment: str) -> str:
    """Key of the cross-process rebuild lease for a segment."""
    return f"{prefix}:lease:rebuild:{segment}"
