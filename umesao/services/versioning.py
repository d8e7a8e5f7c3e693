import hashlib


def content_hash(content):
    """SHA-256 over the raw bytes, lower-case hex."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def should_create_new_version(old_hash, new_content):
    """
    Compare a stored hash with freshly edited content.

    Returns:
        (new_hash, changed); changed is False for a byte-identical edit
    """
    new_hash = content_hash(new_content)
    return new_hash, new_hash != old_hash


def next_version(latest_version):
    """Versions start at 1 and only ever grow by one."""
    if latest_version is None:
        return 1
    return latest_version + 1
