"""Clipboard monitoring and bounded history engine"""
