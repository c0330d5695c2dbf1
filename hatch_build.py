#
# Set a dynamic version number, see https://hatch.pypa.io/dev/how-to/config/dynamic-metadata/
# At release time, override with env var: FEDIRESOLVE_RELEASE_VERSION=y
#

from datetime import datetime
import os

from hatchling.metadata.plugin.interface import MetadataHookInterface

BASE_VERSION = '1.0'


class JSONMetaDataHook(MetadataHookInterface):
    def update(self, metadata):
        if os.environ.get('FEDIRESOLVE_RELEASE_VERSION', '').lower() == 'y':
            metadata['version'] = BASE_VERSION
        else:
            metadata['version'] = BASE_VERSION + '.dev' + datetime.now().strftime("%Y%m%d%H%M%S")
