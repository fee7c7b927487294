"""Shipment lifecycle domain: model, ports and the synchronization core."""
