# Kanban cards: plain CRUD behind the board API
#
# Components:
#   schema.py - Data model (Card, Column)
#   store.py  - SQLite persistence layer
