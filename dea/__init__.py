"""Docker Elastic Agents (DEA).

Starts build agents in Docker containers on demand for a GoCD-style server and
keeps track of them:
 - create agent containers labeled as owned by this plugin
 - re-discover owned containers after a plugin restart
 - terminate containers whose agent never registered with the server
 - tell the server which idle agents to disable and delete

Entry points are the FastAPI app in main.py and the CLI in cli.py.
"""
