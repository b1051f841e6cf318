TOOL_DEFINITIONS = [
    {
        "name": "list_services",
        "description": "List all services deployed in the Kubernetes cluster",
        "inputSchema": {
            "type": "object",
            "properties": {
                "namespace": {
                    "type": "string",
                    "description": "Kubernetes namespace (default: 'default')",
                },
                "serviceType": {
                    "type": "string",
                    "enum": ["Service", "Deployment"],
                    "description": "Filter by service type (e.g., 'Deployment', 'Service')",
                },
            },
            "additionalProperties": False,
        },
    },
    {
        "name": "get_service_info",
        "description": "Get detailed information about a specific service",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "namespace": {
                    "type": "string",
                    "description": "Kubernetes namespace (default: 'default')",
                },
                "includeEndpoints": {
                    "type": "boolean",
                    "description": "Include endpoint details",
                    "default": True,
                },
            },
            "required": ["serviceName"],
            "additionalProperties": False,
        },
    },
    {
        "name": "get_service_health",
        "description": "Check the health status of a service",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "namespace": {"type": "string", "description": "Kubernetes namespace"},
                "checkEndpoint": {
                    "type": "string",
                    "description": "Specific health check endpoint to test (e.g., '/healthz')",
                },
            },
            "required": ["serviceName"],
            "additionalProperties": False,
        },
    },
    {
        "name": "discover_endpoints",
        "description": "Discover API endpoints for a service",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "namespace": {"type": "string", "description": "Kubernetes namespace"},
                "method": {
                    "type": "string",
                    "enum": ["auto", "manual", "swagger"],
                    "description": "Method to discover endpoints",
                    "default": "auto",
                },
            },
            "required": ["serviceName"],
            "additionalProperties": False,
        },
    },
    {
        "name": "get_endpoint_schema",
        "description": "Get request/response schema for a specific endpoint",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "endpoint": {
                    "type": "string",
                    "description": "API endpoint path (e.g., '/api/v1/orders')",
                },
                "method": {
                    "type": "string",
                    "description": "HTTP method (GET, POST, etc.)",
                    "default": "GET",
                },
                "namespace": {"type": "string", "description": "Kubernetes namespace"},
            },
            "required": ["serviceName", "endpoint"],
            "additionalProperties": False,
        },
    },
    {
        "name": "test_endpoint",
        "description": "Make a safe, read-only test API call (GET, HEAD, OPTIONS only)",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "endpoint": {"type": "string", "description": "API endpoint path"},
                "method": {
                    "type": "string",
                    "enum": ["GET", "HEAD", "OPTIONS"],
                    "description": "HTTP method (only safe methods allowed)",
                    "default": "GET",
                },
                "namespace": {"type": "string", "description": "Kubernetes namespace"},
                "queryParams": {"type": "object", "description": "Query parameters"},
                "headers": {"type": "object", "description": "HTTP headers"},
                "timeout": {
                    "type": "number",
                    "description": "Timeout in milliseconds (default: 5000)",
                    "minimum": 100,
                    "maximum": 30000,
                },
            },
            "required": ["serviceName", "endpoint"],
            "additionalProperties": False,
        },
    },
    {
        "name": "get_api_documentation",
        "description": "Retrieve API documentation if available",
        "inputSchema": {
            "type": "object",
            "properties": {
                "serviceName": {"type": "string", "description": "Name of the service"},
                "namespace": {"type": "string", "description": "Kubernetes namespace"},
                "format": {
                    "type": "string",
                    "enum": ["swagger", "openapi", "markdown", "auto"],
                    "description": "Documentation format",
                    "default": "auto",
                },
            },
            "required": ["serviceName"],
            "additionalProperties": False,
        },
    },
]

TOOL_NAMES = [tool["name"] for tool in TOOL_DEFINITIONS]
