"""rsstygen.

Turns chapter listings of script-rendered sites into RSS feeds:
- scraper: Renders sources, extracts chapters and stores unseen ones
- feeds: Rebuilds one RSS document per source from the stored history
- uploader: Pushes the feed files to an FTP server
"""

__version__ = "0.1.0"
