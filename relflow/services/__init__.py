"""Application services for the relflow CLI.

Services implement the release pipeline, coordinating between the domain
types (core/) and infrastructure (git/, platform/).
"""
