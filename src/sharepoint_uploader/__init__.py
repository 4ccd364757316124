"""Upload a local file to a SharePoint document library via Microsoft Graph."""

__version__ = "0.1.0"
