"""
Keys of the content-addressed remote cache

A key is ``{name}-{version}-{checksum}``, e.g.
``ruby-1.9.2-p290-604da71839a6ae02b5b5b5e1b792d5eb``. Since the
checksum is part of the key, new content for the same name and version
gets a new key instead of overwriting the old one.
"""


class InsufficientSpecificationError(ValueError):
    pass


def key_for(spec):
    """The cache key of `spec`; all of name, version and checksum must be set"""
    if not spec.name:
        raise InsufficientSpecificationError(
            'Software must have a name to cache it (%r)' % (spec,))
    if not spec.version:
        raise InsufficientSpecificationError(
            'Software must set a version to cache it (%s)' % spec.name)
    if not spec.checksum:
        raise InsufficientSpecificationError(
            'Software must specify a checksum (md5) to cache it (%s)' % spec.name)
    return '%s-%s-%s' % (spec.name, spec.version, spec.checksum)
