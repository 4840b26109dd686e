""" Version of motlyproto """

version = '0.1.0'
