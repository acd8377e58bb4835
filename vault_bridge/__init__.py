# Vault Bridge MCP Server
#
# Modular package structure:
# - config.py: Settings, ACL file loading and protocol constants
# - logging.py: structlog configuration
# - models.py: Pydantic models for metadata, ACL and tool inputs
# - utils.py: Exceptions, regex patterns and path helpers
# - parser.py: Markdown metadata extraction
# - cache.py: MetadataCache for parsed note metadata
# - store.py: NoteStore interface and filesystem implementation
# - acl.py: PathAccessChecker
# - graph.py: ContentGraphExpander for embed expansion
# - templates.py: Template placeholder rendering
# - tools.py: Tool table and ToolRegistry
# - protocol.py: JSON-RPC ProtocolHandler
# - main.py: Entry point and stdio transport

__version__ = "0.1.0"
