"""Image reference parsing.

Turns free-form image strings such as ``mongo``, ``acme/app:2.1`` or
``mcr.microsoft.com/windows/nanoserver:1809`` into ImageReference values
that carry everything needed to build registry URLs and token scopes.

Parsing rules (first match wins):
    1. ``host/path:tag`` where host contains ``.`` or ``:`` or is ``localhost``
    2. ``host/path`` (tag ``latest``)
    3. ``org/image:tag`` on the default hub
    4. ``org/image`` (tag ``latest``)
    5. ``image:tag`` on the default hub, org ``library``
    6. ``image`` (org ``library``, tag ``latest``)

A ``@sha256:...`` suffix addresses the image by digest and takes the place
of the tag. Parsing never touches the network and never raises.

Example:
    >>> ref = parse_image_reference("acme/app:2.1")
    >>> ref.imagepath, ref.tag
    ('acme/app', '2.1')
    >>> parse_image_reference("") is None
    True
"""

from __future__ import annotations

from dataclasses import dataclass, replace

from registry_rebase.schemas.config import DEFAULT_HUB_REGISTRY

DEFAULT_TAG = "latest"
DEFAULT_ORG = "library"

KNOWN_REGISTRY_HOSTS = frozenset({"localhost"})
"""Host names recognized as registries even without a dot or port."""

HUB_ALIASES = frozenset({"docker.io", "index.docker.io", DEFAULT_HUB_REGISTRY})
"""Host prefixes that name the default hub."""


@dataclass(frozen=True)
class ImageReference:
    """Parsed image reference.

    Attributes:
        registry: Registry host (e.g. registry-1.docker.io, mcr.microsoft.com).
        org: Namespace on the default hub; None for other registries.
        image: Image name (may contain slashes on non-hub registries).
        imagepath: Registry-relative repository path used in URLs.
        tag: Tag or digest (``sha256:...``) to resolve.
    """

    registry: str
    org: str | None
    image: str
    imagepath: str
    tag: str = DEFAULT_TAG

    @property
    def is_digest(self) -> bool:
        """Check whether the reference is addressed by digest."""
        return self.tag.startswith("sha256:")

    @property
    def display_name(self) -> str:
        """Return ``registry/imagepath:tag`` (``@`` for digest references)."""
        separator = "@" if self.is_digest else ":"
        return f"{self.registry}/{self.imagepath}{separator}{self.tag}"

    def is_hub(self, hub_registry: str = DEFAULT_HUB_REGISTRY) -> bool:
        """Check whether the image lives on the hub that requires bearer tokens."""
        return self.registry == hub_registry

    def with_tag(self, tag: str) -> ImageReference:
        """Return a copy of this reference pointing at another tag."""
        return replace(self, tag=tag)

    def __str__(self) -> str:
        return self.display_name


def _is_registry_host(segment: str) -> bool:
    return "." in segment or ":" in segment or segment in KNOWN_REGISTRY_HOSTS


def _split_tag(name: str) -> tuple[str, str | None]:
    """Split ``repo:tag``; a colon before the last slash is not a tag separator."""
    repo, sep, tag = name.rpartition(":")
    if not sep or "/" in tag:
        return name, None
    return repo, tag or None


def _hub_reference(name: str, tag: str) -> ImageReference:
    first, sep, rest = name.partition("/")
    if sep:
        return ImageReference(
            registry=DEFAULT_HUB_REGISTRY,
            org=first,
            image=rest,
            imagepath=f"{first}/{rest}",
            tag=tag,
        )
    return ImageReference(
        registry=DEFAULT_HUB_REGISTRY,
        org=DEFAULT_ORG,
        image=name,
        imagepath=f"{DEFAULT_ORG}/{name}",
        tag=tag,
    )


def parse_image_reference(image: str | None) -> ImageReference | None:
    """Parse an image string into an ImageReference.

    Args:
        image: Free-form image string, or None.

    Returns:
        ImageReference, or None when ``image`` is empty or None.

    Examples:
        >>> parse_image_reference("mongo").display_name
        'registry-1.docker.io/library/mongo:latest'
        >>> parse_image_reference("registry.example.com/ns/app:2.1").imagepath
        'ns/app'
    """
    if not image:
        return None

    name, _, digest = image.partition("@")

    host, sep, path = name.partition("/")
    if sep and host in HUB_ALIASES:
        name = path
    elif sep and _is_registry_host(host):
        repo, tag = _split_tag(path)
        return ImageReference(
            registry=host,
            org=None,
            image=repo,
            imagepath=repo,
            tag=digest or tag or DEFAULT_TAG,
        )

    repo, tag = _split_tag(name)
    return _hub_reference(repo, digest or tag or DEFAULT_TAG)


__all__ = [
    "DEFAULT_ORG",
    "DEFAULT_TAG",
    "ImageReference",
    "parse_image_reference",
]
