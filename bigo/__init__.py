# BigO Board: kanban cards plus an asynchronous AI chat bridge
#
# Packages:
#   kanban/   - card model and SQLite store
#   chat/     - webhook relay, reply normalizer, reply store, poll controller
#   config.py - BoardConfig (YAML + environment)
