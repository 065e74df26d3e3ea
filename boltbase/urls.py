from django.urls import path

from boltbase.views import (
    ApiKeyView,
    BucketDetailView,
    BucketInfoView,
    BucketKindsView,
    BucketListView,
    BucketPairView,
    CountView,
    ExportView,
    HealthCheckView,
    KeyDeleteView,
    KeyValueView,
    PageView,
    PartScanView,
    PasswordView,
    PrefixScanView,
    PutView,
    RangeScanView,
    ScanAllView,
)

app_name = "boltbase"

# Literal segments must precede the <bucket> catch-alls.
urlpatterns = [
    path("bucket/", BucketListView.as_view(), name="bucket-list"),
    path("bucket/type/", BucketKindsView.as_view(), name="bucket-kinds"),
    path("bucket/info/<str:bucket>/", BucketInfoView.as_view(), name="bucket-info"),
    path("bucket/<str:bucket>/<str:target>/", BucketPairView.as_view(), name="bucket-pair"),
    path("bucket/<str:bucket>/", BucketDetailView.as_view(), name="bucket-detail"),
    path("kv/", PutView.as_view(), name="kv-put"),
    path("kv/get/<str:bucket>/<str:key>/", KeyValueView.as_view(), name="kv-get"),
    path("kv/prefix/<str:bucket>/<str:prefix>/", PrefixScanView.as_view(), name="kv-prefix"),
    path("kv/range/<str:bucket>/<str:start>/<str:end>/", RangeScanView.as_view(), name="kv-range"),
    path("kv/all/<str:bucket>/", ScanAllView.as_view(), name="kv-all"),
    path("kv/part/<str:bucket>/<int:offset>/<int:length>/", PartScanView.as_view(), name="kv-part"),
    path("kv/page/<str:bucket>/", PageView.as_view(), name="kv-page"),
    path("kv/count/<str:bucket>/", CountView.as_view(), name="kv-count"),
    path("kv/<str:bucket>/<str:key>/", KeyDeleteView.as_view(), name="kv-delete"),
    path("auth/password/", PasswordView.as_view(), name="password"),
    path("auth/apikey/", ApiKeyView.as_view(), name="apikey"),
    path("export/", ExportView.as_view(), name="export"),
    path("health/", HealthCheckView.as_view(), name="health"),
]
