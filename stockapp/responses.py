"""Uniform JSON envelopes returned by every action endpoint."""

from flask import jsonify


def ok(status: int = 200, **data):
    payload = {"success": True}
    payload.update(data)
    return jsonify(payload), status


def fail(error: str, status: int = 400):
    return jsonify({"success": False, "error": error}), status
