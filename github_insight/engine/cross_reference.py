"""
Cross-reference resolution for issues and pull requests.

Links between resources reach us through two channels:

- Explicit: timeline events. ``CONNECTED`` and ``CROSS_REFERENCED`` events add a
  link, ``DISCONNECTED`` events remove it.
- Incidental: GitHub URLs mentioned in the body or in comments.

``CrossReferenceResolver.resolve`` merges both into one deduplicated list:
explicit links first (discovery order), then text mentions (scan order).
Text mentions are only checked against the surviving explicit links, so a
disconnected resource that is still mentioned in text comes back through the
incidental channel.

Malformed events and URLs are logged and skipped; resolution never fails for
a whole resource.
"""

import re

import structlog

from github_insight.models.domain import (
    CrossReferenceEvidence,
    LinkedResource,
    RepositoryId,
    ResourceKind,
    TimelineEvent,
    TimelineEventKind,
)

log = structlog.get_logger(__name__)

GITHUB_LINK_PATTERN = re.compile(
    r"(?<![\w.-])(?:https?://)?github\.com/([^/\s]+)/([^/\s]+)/(issues|pull)/(\d+)",
    re.IGNORECASE,
)

_SEGMENT_KINDS = {
    "issues": ResourceKind.ISSUE,
    "pull": ResourceKind.PULL_REQUEST,
}


def _is_well_formed(link: LinkedResource) -> bool:
    return bool(link.repository.owner) and bool(link.repository.name) and link.number > 0


def extract_links_from_text(text: str) -> list[LinkedResource]:
    """Return every issue or pull request URL in ``text``, in scan order.

    The scheme is optional (``github.com/a/b/issues/5`` matches). Matches
    with a zero number are skipped. Duplicates are kept.
    """
    links: list[LinkedResource] = []
    for match in GITHUB_LINK_PATTERN.finditer(text):
        owner, name, segment, number_text = match.groups()
        number = int(number_text)
        link = LinkedResource(_SEGMENT_KINDS[segment.lower()], RepositoryId(owner, name), number)
        if not _is_well_formed(link):
            log.debug("malformed_link_skipped", match=match.group(0))
            continue
        links.append(link)
    return links


class CrossReferenceResolver:
    """Merge timeline events and text mentions into a list of linked resources.

    The resolver is stateless; one instance can serve any number of
    resources.
    """

    def resolve(self, evidence: CrossReferenceEvidence) -> list[LinkedResource]:
        """Resolve the linked resources of one issue or pull request.

        Args:
            evidence: Timeline events and free texts of the resource.

        Returns:
            Linked resources, explicit ones first, without duplicates.
        """
        explicit = self.resolve_events(evidence.events)

        resolved = list(explicit)
        seen = set(explicit)
        for text in evidence.texts:
            if not text:
                continue
            for link in extract_links_from_text(text):
                if link in seen:
                    continue
                seen.add(link)
                resolved.append(link)

        return resolved

    def resolve_events(self, events: list[TimelineEvent]) -> list[LinkedResource]:
        """Apply connect and disconnect events in chronological order.

        Events without a timestamp sort before timestamped ones; the sort is
        stable so same-time events keep their API order.
        """
        added: dict[LinkedResource, None] = {}
        removed: set[LinkedResource] = set()

        for event in sorted(events, key=_event_sort_key):
            subject = event.subject
            if subject is None or not _is_well_formed(subject):
                log.debug("malformed_timeline_event_skipped", kind=event.kind.value, subject=str(subject))
                continue

            if event.kind == TimelineEventKind.DISCONNECTED:
                removed.add(subject)
            else:
                added.setdefault(subject, None)

        return [link for link in added if link not in removed]


def _event_sort_key(event: TimelineEvent) -> float:
    if event.created_at is None:
        return float("-inf")
    return event.created_at.timestamp()
