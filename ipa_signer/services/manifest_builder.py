"""Installation manifest and install page rendering.

The manifest layout and the ``itms-services`` link format are dictated by
the over-the-air install protocol and must not change shape: one item, one
``software-package`` asset with its ``url``, and a metadata dict with
``bundle-identifier``, ``bundle-version``, ``kind`` and ``title``.
"""

from html import escape as html_escape
from xml.sax.saxutils import escape as xml_escape

from ipa_signer.models.domain import DEFAULT_BUNDLE_ID, InstallMetadataRecord

DEEP_LINK_TEMPLATE = "itms-services://?action=download-manifest&url={manifest_url}"

_MANIFEST_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
  <key>items</key>
  <array>
    <dict>
      <key>assets</key>
      <array>
        <dict>
          <key>kind</key>
          <string>software-package</string>
          <key>url</key>
          <string>{url}</string>
        </dict>
      </array>
      <key>metadata</key>
      <dict>
        <key>bundle-identifier</key>
        <string>{bundle_id}</string>
        <key>bundle-version</key>
        <string>{bundle_version}</string>
        <key>kind</key>
        <string>software</string>
        <key>title</key>
        <string>{title}</string>
      </dict>
    </dict>
  </array>
</dict>
</plist>
"""

_INSTALL_PAGE_TEMPLATE = """<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>Install {title}</title>
  </head>
  <body>
    <h1>{title}</h1>
    <p>Version: {bundle_version}</p>
    <p>Bundle ID: {bundle_id}</p>
    <a href="{install_link}" class="install-button">Install on iOS</a>
  </body>
</html>
"""


def build_manifest(
    download_url: str,
    bundle_id: str,
    bundle_version: str,
    display_name: str,
) -> str:
    """Render the manifest document for one signed package.

    Values are XML-escaped, so a display name like ``"A & B"`` still yields a
    well-formed document whose parsed fields equal the inputs.
    """
    return _MANIFEST_TEMPLATE.format(
        url=xml_escape(download_url),
        bundle_id=xml_escape(bundle_id or DEFAULT_BUNDLE_ID),
        bundle_version=xml_escape(bundle_version),
        title=xml_escape(display_name),
    )


def build_deep_link(manifest_url: str) -> str:
    """``itms-services`` link that makes iOS fetch ``manifest_url``."""
    return DEEP_LINK_TEMPLATE.format(manifest_url=manifest_url)


def build_install_page(record: InstallMetadataRecord) -> str:
    """Minimal HTML page with the install button for ``record``."""
    return _INSTALL_PAGE_TEMPLATE.format(
        title=html_escape(record.display_name),
        bundle_version=html_escape(record.bundle_version),
        bundle_id=html_escape(record.bundle_id),
        install_link=html_escape(record.install_link, quote=True),
    )
