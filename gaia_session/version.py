"""Gaia Session Meta information.
   Gaia Session gives an application authenticated, encrypted and signed
   access to a user's Gaia storage bucket.
"""
__title__ = 'gaia_session'
__description__ = (
   'Gaia Session gives an application authenticated, encrypted and signed '
   'access to a user storage bucket on a Gaia hub.'
)
__version__ = '0.3.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
__url__ = 'https://github.com/phenobarbital/gaia-session'
