"""Global accelerator, load balancer and DNS record management against caller-supplied APIs."""