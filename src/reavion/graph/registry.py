"""Node type registry — static catalogue of node-type metadata.

Every node type tag has exactly one ``NodeTypeDefinition`` describing its
palette label, category, port counts and, where declared, the variables it
exposes to downstream nodes (``outputs_schema``). Node types that do not
declare a schema either expose nothing or rely on a legacy variable set that
``VariableScopeResolver`` resolves by type.

``define()`` returns ``None`` for tags outside the catalogue. Callers treat
that as a degraded ("unrecognized") node, never as an error.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class NodeType(str, Enum):
    """Closed set of node type tags understood by the engine."""

    # Control
    START = "start"
    END = "end"
    CONDITION = "condition"
    LOOP = "loop"
    WAIT = "wait"

    # Target source
    USE_TARGET_LIST = "use_target_list"
    GENERATE_TARGETS = "generate_targets"
    FILTER_TARGETS = "filter_targets"
    CAPTURE_LEADS = "capture_leads"

    # Browser
    NAVIGATE = "navigate"
    ANALYZE = "analyze"
    SCROLL = "scroll"
    EXTRACT = "extract"
    BROWSER_ACCESSIBILITY_TREE = "browser_accessibility_tree"
    BROWSER_INSPECT = "browser_inspect"
    BROWSER_HIGHLIGHT = "browser_highlight"
    BROWSER_CONSOLE_LOGS = "browser_console_logs"
    BROWSER_GRID = "browser_grid"
    BROWSER_CLICK = "browser_click"
    BROWSER_TYPE = "browser_type"
    BROWSER_NAVIGATE = "browser_navigate"
    BROWSER_SCRAPE = "browser_scrape"
    BROWSER_REPLAY = "browser_replay"

    # X (Twitter)
    X_ADVANCED_SEARCH = "x_advanced_search"
    X_SCOUT = "x_scout"
    X_PROFILE = "x_profile"
    X_POST = "x_post"
    X_ENGAGE = "x_engage"
    X_SCAN_POSTS = "x_scan_posts"

    # Reddit
    REDDIT_SEARCH = "reddit_search"
    REDDIT_SCOUT_COMMUNITY = "reddit_scout_community"
    REDDIT_VOTE = "reddit_vote"
    REDDIT_COMMENT = "reddit_comment"
    REDDIT_JOIN = "reddit_join"
    REDDIT_SCAN_POSTS = "reddit_scan_posts"

    # LinkedIn
    LINKEDIN_SEARCH = "linkedin_search"
    LINKEDIN_CONNECT = "linkedin_connect"
    LINKEDIN_MESSAGE = "linkedin_message"

    # Instagram
    INSTAGRAM_POST = "instagram_post"
    INSTAGRAM_ENGAGE = "instagram_engage"

    # Bluesky
    BLUESKY_POST = "bluesky_post"
    BLUESKY_REPLY = "bluesky_reply"

    # Capability
    MCP_CALL = "mcp_call"
    API_CALL = "api_call"
    BROWSER_ACTION = "browser_action"

    # Human in the loop
    APPROVAL = "approval"
    PAUSE = "pause"


class NodeCategory(str, Enum):
    """Palette categories."""

    CONTROL = "Control"
    TARGET = "Target source"
    BROWSER = "Browser"
    X = "X (Twitter)"
    REDDIT = "Reddit"
    LINKEDIN = "LinkedIn"
    INSTAGRAM = "Instagram"
    BLUESKY = "Bluesky"
    CAPABILITY = "Capability"
    HITL = "Human in the Loop"


# Node types that may appear at most once per graph.
SINGLETON_TYPES: frozenset[str] = frozenset({NodeType.START.value, NodeType.END.value})

# Handles carrying branch/iteration semantics; layout never rewrites them.
SPECIALIZED_HANDLES: frozenset[str] = frozenset({"true", "false", "item", "done"})

# Node types whose variables come from an external target list.
LIST_SOURCE_TYPES: frozenset[str] = frozenset(
    {NodeType.USE_TARGET_LIST.value, NodeType.GENERATE_TARGETS.value}
)

UNRECOGNIZED_LABEL = "Unrecognized node"


@dataclass(frozen=True)
class OutputVariable:
    """One variable a node type exposes to its descendants."""

    label: str
    template_key: str
    example: str | None = None


@dataclass(frozen=True)
class NodeTypeDefinition:
    """Immutable metadata for one node type."""

    type: NodeType
    label: str
    category: NodeCategory
    description: str
    input_port_count: int = 1
    output_port_count: int = 1
    outputs_schema: tuple[OutputVariable, ...] | None = None

    @property
    def is_singleton(self) -> bool:
        """Whether at most one node of this type may exist in a graph."""
        return self.type.value in SINGLETON_TYPES


def _d(
    node_type: NodeType,
    label: str,
    category: NodeCategory,
    description: str,
    inputs: int = 1,
    outputs: int = 1,
    schema: tuple[OutputVariable, ...] | None = None,
) -> NodeTypeDefinition:
    return NodeTypeDefinition(node_type, label, category, description, inputs, outputs, schema)


_C = NodeCategory
_T = NodeType
_V = OutputVariable

_DEFINITIONS: tuple[NodeTypeDefinition, ...] = (
    _d(_T.START, "Start", _C.CONTROL, "Entry point of the playbook", inputs=0),
    _d(_T.END, "End", _C.CONTROL, "Successful completion", outputs=0),
    _d(_T.CONDITION, "Condition", _C.CONTROL, "Branch based on logic", outputs=2),
    _d(
        _T.LOOP, "Loop", _C.CONTROL, "Iterate over items", outputs=2,
        schema=(
            _V("Current Item", "item", '{ id: "123", content: "..." }'),
            _V("Current Index", "index", "0"),
        ),
    ),
    _d(_T.WAIT, "Wait", _C.CONTROL, "Delay execution"),
    _d(_T.USE_TARGET_LIST, "Use List", _C.TARGET, "Load targets from database"),
    _d(_T.GENERATE_TARGETS, "Generate", _C.TARGET, "AI generated targets"),
    _d(_T.FILTER_TARGETS, "Filter", _C.TARGET, "Refine target list"),
    _d(_T.CAPTURE_LEADS, "Capture Leads", _C.TARGET, "Save found leads to database"),
    _d(_T.NAVIGATE, "Navigate", _C.BROWSER, "Go to URL"),
    _d(
        _T.ANALYZE, "Analyze", _C.BROWSER, "Analyze page content",
        schema=(
            _V("Analysis Result", "analysis", "This post is about..."),
            _V("Confidence", "confidence", "0.95"),
        ),
    ),
    _d(_T.SCROLL, "Scroll", _C.BROWSER, "Scroll the page"),
    _d(_T.EXTRACT, "Extract", _C.BROWSER, "Scrape data"),
    _d(_T.BROWSER_ACCESSIBILITY_TREE, "AX Tree", _C.BROWSER, "Analyze semantic structure"),
    _d(_T.BROWSER_INSPECT, "Inspect", _C.BROWSER, "Deep element analysis"),
    _d(_T.BROWSER_HIGHLIGHT, "Highlight", _C.BROWSER, "Visually mark elements"),
    _d(_T.BROWSER_CONSOLE_LOGS, "Logs", _C.BROWSER, "Get page errors/logs"),
    _d(_T.BROWSER_GRID, "Grid", _C.BROWSER, "Overlay coordinate grid"),
    _d(_T.BROWSER_CLICK, "Rec. Click", _C.BROWSER, "Recorded Click"),
    _d(_T.BROWSER_TYPE, "Rec. Type", _C.BROWSER, "Recorded Input"),
    _d(_T.BROWSER_NAVIGATE, "Rec. Nav", _C.BROWSER, "Recorded Navigation"),
    _d(_T.BROWSER_SCRAPE, "HTML Scrape", _C.BROWSER, "HTML scrape of the current page"),
    _d(_T.BROWSER_REPLAY, "Replay Rec.", _C.BROWSER, "Replay Chrome Recorder JSON"),
    _d(
        _T.X_ADVANCED_SEARCH, "X Search", _C.X, "Advanced search for posts on X",
        schema=(
            _V("Search Results", "items", '[{ id: "123", text: "..." }]'),
            _V("Total Count", "count", "50"),
        ),
    ),
    _d(
        _T.X_SCOUT, "X Scout", _C.X, "Scout Niches, Communities, or Competitor Audiences",
        schema=(
            _V("Accounts Found", "accounts", "@founder1 @indie_maker"),
            _V("Trending Topics", "topics", "#saas #ai"),
        ),
    ),
    _d(
        _T.X_PROFILE, "X Profile", _C.X, "Qualify leads or check your identity.",
        schema=(
            _V("Handle", "handle", "@elonmusk"),
            _V("Followers", "followers", "100000"),
            _V("Bio", "bio", "Tech Fan"),
            _V("Is Verified", "is_verified", "true"),
        ),
    ),
    _d(_T.X_POST, "X Post", _C.X, "Create a new post on X"),
    _d(_T.X_ENGAGE, "X Engage", _C.X, "Multi-action engagement on X"),
    _d(
        _T.X_SCAN_POSTS, "X Scan", _C.X, "Identify 10-15 posts and authors in one go",
        schema=(
            _V("Posts Found", "posts", '[{ author: "@user", text: "..." }]'),
            _V("Total Count", "count", "12"),
        ),
    ),
    _d(_T.REDDIT_SEARCH, "Reddit Search", _C.REDDIT, "Search Reddit"),
    _d(_T.REDDIT_SCOUT_COMMUNITY, "Scout Sub", _C.REDDIT, "Scout a Subreddit"),
    _d(_T.REDDIT_VOTE, "Reddit Vote", _C.REDDIT, "Up/Down vote"),
    _d(_T.REDDIT_COMMENT, "Reddit Comment", _C.REDDIT, "Comment or Reply"),
    _d(_T.REDDIT_JOIN, "Reddit Join", _C.REDDIT, "Join/Leave Subreddit"),
    _d(
        _T.REDDIT_SCAN_POSTS, "Reddit Scan", _C.REDDIT, "Scan visible posts on Reddit",
        schema=(
            _V("Posts Found", "posts", '[{ author: "user", title: "..." }]'),
            _V("Total Count", "count", "12"),
        ),
    ),
    _d(_T.LINKEDIN_SEARCH, "LI Search", _C.LINKEDIN, "Search LinkedIn"),
    _d(_T.LINKEDIN_CONNECT, "LI Connect", _C.LINKEDIN, "Connect with user"),
    _d(_T.LINKEDIN_MESSAGE, "LI Message", _C.LINKEDIN, "Send direct message"),
    _d(_T.INSTAGRAM_POST, "IG Post", _C.INSTAGRAM, "Create new post"),
    _d(_T.INSTAGRAM_ENGAGE, "IG Engage", _C.INSTAGRAM, "Like or Comment"),
    _d(_T.BLUESKY_POST, "BSKY Post", _C.BLUESKY, "Post to Bluesky"),
    _d(_T.BLUESKY_REPLY, "BSKY Reply", _C.BLUESKY, "Reply to post"),
    _d(_T.MCP_CALL, "MCP Call", _C.CAPABILITY, "Call external tool"),
    _d(_T.API_CALL, "API Call", _C.CAPABILITY, "HTTP Request"),
    _d(_T.BROWSER_ACTION, "Browser Act", _C.CAPABILITY, "Low-level action"),
    _d(_T.APPROVAL, "Approval", _C.HITL, "Wait for human"),
    _d(_T.PAUSE, "Pause", _C.HITL, "Pause execution"),
)

NODE_DEFINITIONS: dict[str, NodeTypeDefinition] = {d.type.value: d for d in _DEFINITIONS}


def define(node_type: str | NodeType) -> NodeTypeDefinition | None:
    """Look up the definition for a node type tag.

    Args:
        node_type: A ``NodeType`` member or its raw string tag.

    Returns:
        The definition, or ``None`` for tags outside the catalogue.
    """
    key = node_type.value if isinstance(node_type, NodeType) else node_type
    return NODE_DEFINITIONS.get(key)


def default_label(node_type: str | NodeType) -> str:
    """Palette label for a type, or a degraded label for unknown types."""
    definition = define(node_type)
    return definition.label if definition else UNRECOGNIZED_LABEL


def is_singleton(node_type: str | NodeType) -> bool:
    """Whether ``node_type`` is the start or end singleton type."""
    key = node_type.value if isinstance(node_type, NodeType) else node_type
    return key in SINGLETON_TYPES


def definitions_by_category() -> dict[NodeCategory, list[NodeTypeDefinition]]:
    """Group definitions by palette category, preserving catalogue order."""
    grouped: dict[NodeCategory, list[NodeTypeDefinition]] = {}
    for definition in _DEFINITIONS:
        grouped.setdefault(definition.category, []).append(definition)
    return grouped
