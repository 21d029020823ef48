from mcp_rpkg_dev.server import main

main()
