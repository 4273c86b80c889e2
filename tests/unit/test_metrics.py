from writecream_gateway.metrics import (
    record_extraction_failure,
    record_request,
    record_stream_chunks,
    render_metrics,
    reset_metrics,
)


def test_render_metrics_counters_and_histogram() -> None:
    reset_metrics()
    record_request("/v1/chat/completions", "writecream-chat", 200, 0.3, stream=True)
    record_extraction_failure("writecream-chat")
    record_stream_chunks("writecream-chat", 7, completed=True)
    record_stream_chunks("writecream-chat", 0, completed=False)

    text = render_metrics()
    assert "# TYPE wcg_requests_total counter" in text
    assert (
        'wcg_requests_total{endpoint="/v1/chat/completions",model="writecream-chat",'
        'status="200",stream="true"} 1.0'
    ) in text
    assert 'wcg_extraction_failures_total{model="writecream-chat"} 1.0' in text
    assert 'wcg_stream_chunks_total{completed="true",model="writecream-chat"} 7.0' in text
    assert 'completed="false"' not in text
    assert (
        'wcg_request_duration_seconds_bucket{endpoint="/v1/chat/completions",'
        'le="0.25",model="writecream-chat"} 0'
    ) in text
    assert (
        'wcg_request_duration_seconds_bucket{endpoint="/v1/chat/completions",'
        'le="0.5",model="writecream-chat"} 1'
    ) in text
    reset_metrics()
    assert render_metrics() == ""
