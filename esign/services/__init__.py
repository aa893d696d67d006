"""Signing workflow services"""
