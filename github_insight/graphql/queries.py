"""GraphQL query documents for the GitHub v4 API.

Queries are plain strings assembled from shared field selections. Variable
values (owners, names, cursors, search strings) are always passed as GraphQL
variables; only aliases and resource numbers of multi-number queries are
inlined.

Multi-number queries fetch several issues or pull requests of one repository
in a single request using aliases (``issue0``, ``issue1``, ... or ``pr0``,
``pr1``, ...). A missing number resolves to a null alias rather than failing
the whole request.
"""

import re

from github_insight.models.domain import RepositoryId

DEFAULT_CONNECTION_LIMIT = 100
PROJECT_ITEMS_PAGE_SIZE = 100

ISSUE_ALIAS_PREFIX = "issue"
PULL_REQUEST_ALIAS_PREFIX = "pr"

# Operation names declared by the documents below; sent as ``operationName``.
MULTIPLE_ISSUES_OPERATION = "MultipleIssues"
MULTIPLE_PULL_REQUESTS_OPERATION = "MultiplePullRequests"
REPOSITORY_OPERATION = "Repository"
SEARCH_OPERATION = "Search"
PROJECT_OPERATION = "Project"
PROJECT_ITEMS_OPERATION = "ProjectItems"
PULL_REQUEST_FILES_OPERATION = "PullRequestFiles"

_REPOSITORY_OWNER_FIELDS = """
    repository {
      owner { login }
      name
    }
"""

_LINK_TARGET_FIELDS = """
      __typename
      ... on Issue {
        number
        title
        url
        state
        repository { owner { login } name }
      }
      ... on PullRequest {
        number
        title
        url
        state
        repository { owner { login } name }
      }
"""

_PAGE_INFO = """
    pageInfo {
      hasNextPage
      endCursor
    }
"""


def timeline_items_selection(limit: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """Selection of the relationship events used for cross-reference resolution."""
    return f"""
    timelineItems(itemTypes: [CROSS_REFERENCED_EVENT, CONNECTED_EVENT, DISCONNECTED_EVENT], first: {limit}) {{
      nodes {{
        __typename
        ... on CrossReferencedEvent {{
          createdAt
          source {{ {_LINK_TARGET_FIELDS} }}
        }}
        ... on ConnectedEvent {{
          createdAt
          subject {{ {_LINK_TARGET_FIELDS} }}
        }}
        ... on DisconnectedEvent {{
          createdAt
          subject {{ {_LINK_TARGET_FIELDS} }}
        }}
      }}
    }}
"""


def _comments_selection(limit: int) -> str:
    return f"""
    comments(first: {limit}) {{
      nodes {{
        body
        createdAt
        updatedAt
        url
        author {{ login }}
      }}
      totalCount
    }}
"""


def issue_fields(limit: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """Fields selected for every issue node."""
    return f"""
    number
    title
    body
    state
    createdAt
    updatedAt
    closedAt
    url
    locked
    author {{ login }}
    assignees(first: {limit}) {{ nodes {{ login }} }}
    labels(first: {limit}) {{ nodes {{ name }} }}
    milestone {{ number }}
    {_comments_selection(limit)}
    {timeline_items_selection(limit)}
    {_REPOSITORY_OWNER_FIELDS}
"""


def pull_request_fields(limit: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """Fields selected for every pull request node."""
    return f"""
    number
    title
    body
    state
    createdAt
    updatedAt
    closedAt
    mergedAt
    url
    isDraft
    baseRefName
    headRefName
    additions
    deletions
    changedFiles
    author {{ login }}
    assignees(first: {limit}) {{ nodes {{ login }} }}
    labels(first: {limit}) {{ nodes {{ name }} }}
    reviewRequests(first: {limit}) {{
      nodes {{
        requestedReviewer {{
          __typename
          ... on User {{ login }}
          ... on Team {{ name }}
        }}
      }}
    }}
    {_comments_selection(limit)}
    {timeline_items_selection(limit)}
    {_REPOSITORY_OWNER_FIELDS}
"""


def multi_issue_query(numbers: list[int] | tuple[int, ...], limit: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """Query fetching several issues of one repository by number.

    Variables: ``owner``, ``name``.
    """
    if not numbers:
        raise ValueError("At least one issue number is required")
    fields = issue_fields(limit)
    aliases = "\n".join(
        f"{ISSUE_ALIAS_PREFIX}{index}: issue(number: {int(number)}) {{ {fields} }}"
        for index, number in enumerate(numbers)
    )
    return f"""
query {MULTIPLE_ISSUES_OPERATION}($owner: String!, $name: String!) {{
  repository(owner: $owner, name: $name) {{
    {aliases}
  }}
}}
"""


def multi_pull_request_query(
    numbers: list[int] | tuple[int, ...],
    limit: int = DEFAULT_CONNECTION_LIMIT,
) -> str:
    """Query fetching several pull requests of one repository by number.

    Variables: ``owner``, ``name``.
    """
    if not numbers:
        raise ValueError("At least one pull request number is required")
    fields = pull_request_fields(limit)
    aliases = "\n".join(
        f"{PULL_REQUEST_ALIAS_PREFIX}{index}: pullRequest(number: {int(number)}) {{ {fields} }}"
        for index, number in enumerate(numbers)
    )
    return f"""
query {MULTIPLE_PULL_REQUESTS_OPERATION}($owner: String!, $name: String!) {{
  repository(owner: $owner, name: $name) {{
    {aliases}
  }}
}}
"""


REPOSITORY_QUERY = f"""
query {REPOSITORY_OPERATION}($owner: String!, $name: String!) {{
  repository(owner: $owner, name: $name) {{
    name
    url
    description
    primaryLanguage {{ name }}
    createdAt
    updatedAt
    defaultBranchRef {{ name }}
    owner {{ login }}
    labels(first: {DEFAULT_CONNECTION_LIMIT}) {{ nodes {{ name }} }}
    milestones(first: {DEFAULT_CONNECTION_LIMIT}, states: [OPEN, CLOSED]) {{
      nodes {{
        number
        title
        state
        description
        dueOn
      }}
    }}
  }}
}}
"""
"""Variables: ``owner``, ``name``."""


def search_query(limit: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """Search across issues and pull requests, one page at a time.

    Variables: ``query``, ``first``, ``cursor`` (null for the first page).
    """
    return f"""
query {SEARCH_OPERATION}($query: String!, $first: Int!, $cursor: String) {{
  search(query: $query, type: ISSUE, first: $first, after: $cursor) {{
    nodes {{
      __typename
      ... on Issue {{ {issue_fields(limit)} }}
      ... on PullRequest {{ {pull_request_fields(limit)} }}
    }}
    {_PAGE_INFO}
  }}
}}
"""


def pull_request_files_query(page_size: int = DEFAULT_CONNECTION_LIMIT) -> str:
    """One page of the files changed by a pull request.

    Variables: ``owner``, ``name``, ``number``, ``cursor`` (null for the
    first page).
    """
    return f"""
query {PULL_REQUEST_FILES_OPERATION}($owner: String!, $name: String!, $number: Int!, $cursor: String) {{
  repository(owner: $owner, name: $name) {{
    pullRequest(number: $number) {{
      files(first: {page_size}, after: $cursor) {{
        nodes {{
          path
          additions
          deletions
          changeType
        }}
        {_PAGE_INFO}
      }}
    }}
  }}
}}
"""


_PROJECT_CONTENT_FIELDS = f"""
      id
      number
      title
      url
      state
      createdAt
      updatedAt
      author {{ login }}
      assignees(first: {DEFAULT_CONNECTION_LIMIT}) {{ nodes {{ login }} }}
      labels(first: {DEFAULT_CONNECTION_LIMIT}) {{ nodes {{ name }} }}
      repository {{ owner {{ login }} name }}
"""

_PROJECT_FIELD_REF = "field { ... on ProjectV2FieldCommon { id name } }"

_PROJECT_ITEM_SELECTION = f"""
      nodes {{
        id
        content {{
          __typename
          ... on Issue {{ {_PROJECT_CONTENT_FIELDS} }}
          ... on PullRequest {{ {_PROJECT_CONTENT_FIELDS} }}
          ... on DraftIssue {{
            id
            title
            createdAt
            updatedAt
          }}
        }}
        fieldValues(first: {DEFAULT_CONNECTION_LIMIT}) {{
          nodes {{
            __typename
            ... on ProjectV2ItemFieldTextValue {{ text {_PROJECT_FIELD_REF} }}
            ... on ProjectV2ItemFieldSingleSelectValue {{ name {_PROJECT_FIELD_REF} }}
            ... on ProjectV2ItemFieldNumberValue {{ number {_PROJECT_FIELD_REF} }}
            ... on ProjectV2ItemFieldDateValue {{ date {_PROJECT_FIELD_REF} }}
          }}
        }}
      }}
      {_PAGE_INFO}
"""

_PROJECT_METADATA_FIELDS = """
      id
      title
      url
      shortDescription
      readme
      public
      closed
      closedAt
      createdAt
      updatedAt
"""


def _owner_root(user: bool) -> str:
    return "user" if user else "organization"


def project_items_query(user: bool, page_size: int = PROJECT_ITEMS_PAGE_SIZE) -> str:
    """One page of project items under a user or organization owner.

    Variables: ``owner``, ``number``, ``cursor`` (null for the first page).
    """
    return f"""
query {PROJECT_ITEMS_OPERATION}($owner: String!, $number: Int!, $cursor: String) {{
  {_owner_root(user)}(login: $owner) {{
    projectV2(number: $number) {{
      items(first: {page_size}, after: $cursor) {{
        {_PROJECT_ITEM_SELECTION}
      }}
    }}
  }}
}}
"""


def project_query(user: bool) -> str:
    """Project metadata under a user or organization owner.

    Variables: ``owner``, ``number``.
    """
    return f"""
query {PROJECT_OPERATION}($owner: String!, $number: Int!) {{
  {_owner_root(user)}(login: $owner) {{
    projectV2(number: $number) {{
      {_PROJECT_METADATA_FIELDS}
    }}
  }}
}}
"""


_REPO_QUALIFIER = re.compile(r"\brepo:\S+")


def normalize_repo_search_query(query: str, repository: RepositoryId) -> str:
    """Scope a free-form search query to one repository.

    Existing ``repo:`` qualifiers are replaced by the target repository. An
    otherwise empty query gets ``is:issue is:pr`` since the search API does
    not reliably answer a bare ``repo:`` query.

    Example:
        >>> normalize_repo_search_query("repo:old/repo some terms", RepositoryId("new", "repo"))
        'repo:new/repo some terms'
    """
    remaining = " ".join(_REPO_QUALIFIER.sub("", query).split())
    scope = f"repo:{repository.full_name}"
    if not remaining:
        return f"{scope} is:issue is:pr"
    return f"{scope} {remaining}"
