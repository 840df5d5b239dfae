"""Rigid offset calibration between two VR tracking systems."""
