"""MCP (Model Context Protocol) tool transport over the record facade."""
