from mcp_server_acoustic import main

main()
