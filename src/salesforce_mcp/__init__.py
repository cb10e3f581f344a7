# Salesforce DML & guided case creation MCP server
