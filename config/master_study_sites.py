"""
Master list of study sites. Keys are site codes; values hold metadata.
Add additional sites as needed following the same schema. ``nwm_comid`` may be
left as None to have the COMID resolved from the coordinate at run time.
"""

MASTER_STUDY_SITES = {
    'SIPSEY': {
        'name': 'Sipsey River near Elrod, AL',
        'state': 'AL',
        'lat': 33.25706249,
        'lon': -87.7764022,
        'crs': 'EPSG:4269',
        'nwm_comid': None,
        'usgs_id': '02446500',
        'region': 'Southeast',
    },
}
