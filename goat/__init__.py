"""GOAT Core: capacity, waitlist and cash register management for sports organizations."""
